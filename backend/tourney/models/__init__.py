from tourney.models.match import (
    ALLOWED_TRANSITIONS,
    SLOT_A,
    SLOT_B,
    Match,
    MatchState,
    can_transition,
    required_best_of,
    wins_needed,
)

__all__ = [
    "Match",
    "MatchState",
    "ALLOWED_TRANSITIONS",
    "SLOT_A",
    "SLOT_B",
    "can_transition",
    "required_best_of",
    "wins_needed",
]
