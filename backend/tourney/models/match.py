import math
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from sqlalchemy import JSON, Enum as SAEnum, Index
from sqlmodel import Column, Field, SQLModel


class MatchState(str, Enum):
    SCHEDULED = "scheduled"
    LIVE = "live"
    REPORTED = "reported"
    FINAL = "final"
    # Reserved: kept in the schema, no transition leads here.
    DISPUTED = "disputed"


SLOT_A = "A"
SLOT_B = "B"

ALLOWED_TRANSITIONS: Dict[MatchState, FrozenSet[MatchState]] = {
    MatchState.SCHEDULED: frozenset({MatchState.LIVE, MatchState.REPORTED, MatchState.FINAL}),
    MatchState.LIVE: frozenset({MatchState.LIVE, MatchState.REPORTED, MatchState.FINAL}),
    MatchState.REPORTED: frozenset({MatchState.LIVE, MatchState.REPORTED, MatchState.FINAL}),
    MatchState.FINAL: frozenset({MatchState.LIVE}),
    MatchState.DISPUTED: frozenset(),
}


def can_transition(current: MatchState, target: MatchState) -> bool:
    return MatchState(target) in ALLOWED_TRANSITIONS[MatchState(current)]


def required_best_of(round_number: int) -> int:
    """Round 1 is best-of-3, every later round best-of-5."""
    return 3 if round_number == 1 else 5


def wins_needed(best_of: int) -> int:
    return math.ceil(best_of / 2)


class Match(SQLModel, table=True):
    __table_args__ = (Index("ix_match_tournament_round", "tournament_id", "round"),)

    id: str = Field(primary_key=True)
    tournament_id: str = Field(index=True)
    round: int
    match_index: int  # position inside the round (0-based)
    best_of: int

    # Entrant references; None means empty (awaiting advancement or padding)
    slot_a: Optional[str] = Field(default=None, index=True)
    slot_b: Optional[str] = Field(default=None, index=True)
    score_a: int = Field(default=0)
    score_b: int = Field(default=0)

    state: MatchState = Field(
        default=MatchState.SCHEDULED,
        sa_column=Column(
            SAEnum(
                MatchState,
                values_callable=lambda e: [m.value for m in e],
                native_enum=False,
                length=16,
            ),
            nullable=False,
        ),
    )
    scheduled_at: Optional[datetime] = Field(default=None, index=True)

    # Forward links: winner fills slot A (or B) of the referenced match
    next_match_id_a: Optional[str] = Field(default=None, index=True)
    next_match_id_b: Optional[str] = Field(default=None, index=True)

    report_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))

    created_at: datetime = Field(default_factory=datetime.utcnow)
    started_at: Optional[datetime] = Field(default=None)
    completed_at: Optional[datetime] = Field(default=None)

    def entrants(self) -> List[str]:
        """Non-empty slots, A before B."""
        return [s for s in (self.slot_a, self.slot_b) if s is not None]

    def next_link(self) -> Optional[Tuple[str, str]]:
        """(downstream match id, slot) or None for the championship."""
        if self.next_match_id_a:
            return self.next_match_id_a, SLOT_A
        if self.next_match_id_b:
            return self.next_match_id_b, SLOT_B
        return None
