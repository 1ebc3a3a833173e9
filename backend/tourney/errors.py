"""
Domain errors raised by the bracket services.

Every error carries a stable ``code``, an HTTP-ish ``status_code`` for the API
layer, a human readable ``message`` and structured ``params`` so a presentation
layer can render its own text. Services never raise HTTPException directly;
``tourney.main`` maps these to JSON responses.
"""

from typing import Any, Dict, List, Optional


class TourneyError(Exception):
    code = "TOURNEY_ERROR"
    status_code = 400

    def __init__(self, message: str, params: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.params = params or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"detail": self.message, "code": self.code, "params": self.params}


class NotEnoughEntrants(TourneyError):
    code = "NOT_ENOUGH_ENTRANTS"

    def __init__(self, count: int, minimum: int = 2):
        super().__init__(
            f"A bracket needs at least {minimum} entrants, got {count}.",
            {"count": count, "minimum": minimum},
        )


class BracketAlreadyExists(TourneyError):
    code = "BRACKET_ALREADY_EXISTS"
    status_code = 409

    def __init__(self, tournament_id: str):
        super().__init__(
            f"Bracket already exists for tournament {tournament_id}.",
            {"tournament_id": tournament_id},
        )


class MatchNotFound(TourneyError):
    code = "MATCH_NOT_FOUND"
    status_code = 404

    def __init__(self, match_id: str):
        super().__init__("Match not found", {"match_id": match_id})


class ScoreLimitExceeded(TourneyError):
    code = "SCORE_LIMIT_EXCEEDED"

    def __init__(self, max_score: int, best_of: int):
        super().__init__(
            f"Score cannot exceed {max_score} for a Best of {best_of} match.",
            {"max": max_score, "best_of": best_of},
        )


class MatchFinalized(TourneyError):
    code = "MATCH_FINALIZED"

    def __init__(self, match_id: str):
        super().__init__("Cannot update a finalized match.", {"match_id": match_id})


class ConfirmWinsNeeded(TourneyError):
    code = "CONFIRM_WINS_NEEDED"

    def __init__(self, needed: int, best_of: int, score_a: int, score_b: int):
        super().__init__(
            f"Match cannot be finished. Requires {needed} wins (Best of {best_of}). "
            f"Current: {score_a}-{score_b}",
            {"needed": needed, "best_of": best_of, "score_a": score_a, "score_b": score_b},
        )


class NoWinnerDetermined(TourneyError):
    code = "NO_WINNER_DETERMINED"

    def __init__(self, score_a: int, score_b: int):
        super().__init__("No winner determined.", {"score_a": score_a, "score_b": score_b})


class InvalidMatchState(TourneyError):
    code = "INVALID_MATCH_STATE"
    status_code = 409

    def __init__(self, state: str, target: Optional[str] = None, reason: Optional[str] = None):
        if reason:
            message = reason
        elif target:
            message = f"Cannot move match from '{state}' to '{target}'."
        else:
            message = f"Operation not allowed while match is '{state}'."
        params: Dict[str, Any] = {"state": state, "target": target}
        if reason:
            params["reason"] = reason
        super().__init__(message, params)


class InvalidTimestamp(TourneyError):
    code = "INVALID_TIMESTAMP"
    status_code = 422

    def __init__(self, value: Any):
        super().__init__(f"Invalid timestamp: {value!r}", {"value": str(value)})


class ScheduleConflict(TourneyError):
    code = "SCHEDULE_CONFLICT"
    status_code = 409

    def __init__(self, conflicts: List[Dict[str, Any]]):
        self.conflicts = conflicts
        super().__init__(
            f"Schedule conflict with {len(conflicts)} match(es) inside the buffer window.",
            {"conflicts": conflicts},
        )
