"""
Match lifecycle rules: state transitions and best-of score policy.

Functions here validate and mutate a single in-memory Match; loading,
locking, persisting and notifying are done by MatchService. Each ``apply_*``
either raises a domain error without touching the match, or applies the
whole change.

    scheduled -> live -> reported -> final
    reported | live | final -> live      (reject / reset)
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from tourney.errors import (
    ConfirmWinsNeeded,
    InvalidMatchState,
    MatchFinalized,
    NoWinnerDetermined,
    ScoreLimitExceeded,
)
from tourney.models.match import Match, MatchState, can_transition, required_best_of, wins_needed
from tourney.services.advancement_service import winner_of

logger = logging.getLogger(__name__)

RESETTABLE_STATES = frozenset({MatchState.REPORTED, MatchState.LIVE, MatchState.FINAL})


def normalize_best_of(match: Match) -> bool:
    """
    Correct a stored best_of that disagrees with the round policy.

    Returns True if the match was changed (caller persists it).
    """
    expected = required_best_of(match.round)
    if match.best_of == expected:
        return False
    logger.warning(
        "Correcting best_of for match %s (round %d): stored %s, expected %d",
        match.id,
        match.round,
        match.best_of,
        expected,
    )
    match.best_of = expected
    return True


def check_score_limits(match: Match, score_a: Optional[int], score_b: Optional[int]) -> None:
    max_score = wins_needed(match.best_of)
    for score in (score_a, score_b):
        if score is not None and score > max_score:
            raise ScoreLimitExceeded(max_score, match.best_of)


def require_both_entrants(match: Match, target: MatchState) -> None:
    """A match still waiting on a feeder cannot carry a result."""
    if match.slot_a is None or match.slot_b is None:
        current = MatchState(match.state)
        raise InvalidMatchState(
            current.value,
            target.value,
            reason=f"Match {match.id} is waiting for an entrant; both slots must be filled.",
        )


def _parse_state(value: Any, current: MatchState) -> MatchState:
    try:
        return MatchState(value)
    except ValueError:
        raise InvalidMatchState(current.value, str(value))


def apply_report(
    match: Match,
    score_a: int,
    score_b: int,
    proof: Optional[Dict[str, Any]] = None,
) -> None:
    """Record a submitted result; the match moves to ``reported``."""
    current = MatchState(match.state)
    if current == MatchState.FINAL:
        raise MatchFinalized(match.id)
    require_both_entrants(match, MatchState.REPORTED)
    check_score_limits(match, score_a, score_b)
    if not can_transition(current, MatchState.REPORTED):
        raise InvalidMatchState(current.value, MatchState.REPORTED.value)

    match.score_a = score_a
    match.score_b = score_b
    if proof is not None:
        match.report_json = proof
    match.state = MatchState.REPORTED


def apply_reset(match: Match) -> None:
    """Back to ``live`` with zeroed scores and no report. Advanced winners stay put."""
    current = MatchState(match.state)
    if current not in RESETTABLE_STATES:
        raise InvalidMatchState(current.value, MatchState.LIVE.value)
    match.state = MatchState.LIVE
    match.score_a = 0
    match.score_b = 0
    match.report_json = None
    match.completed_at = None


def apply_update(
    match: Match,
    score_a: Optional[int] = None,
    score_b: Optional[int] = None,
    proof: Optional[Dict[str, Any]] = None,
    state: Optional[Any] = None,
) -> bool:
    """
    Partial update of scores, report metadata and (non-final) state.

    A final match only accepts an update that retargets it to a non-final
    state; the reset is applied first, then the provided fields. Finalizing
    goes through confirm, never through here.

    Returns True if the state changed.
    """
    current = MatchState(match.state)
    target = _parse_state(state, current) if state is not None else None

    if target == MatchState.FINAL:
        raise InvalidMatchState(current.value, target.value)
    if current == MatchState.FINAL and target is None:
        raise MatchFinalized(match.id)
    if target is not None and not can_transition(current, target):
        raise InvalidMatchState(current.value, target.value)
    if score_a is not None or score_b is not None or target == MatchState.REPORTED:
        require_both_entrants(match, target or current)
    check_score_limits(match, score_a, score_b)

    if current == MatchState.FINAL:
        apply_reset(match)
    if target is not None:
        match.state = target
    if score_a is not None:
        match.score_a = score_a
    if score_b is not None:
        match.score_b = score_b
    if proof is not None:
        match.report_json = proof
    return MatchState(match.state) != current


def apply_start(match: Match) -> None:
    current = MatchState(match.state)
    if current != MatchState.SCHEDULED:
        raise InvalidMatchState(current.value, MatchState.LIVE.value)
    match.state = MatchState.LIVE
    if match.started_at is None:
        match.started_at = datetime.utcnow()


def apply_confirm(match: Match) -> str:
    """
    Finalize a match whose scores decide a winner. Returns the winner.

    Caller handles the already-final no-op before calling this.
    """
    current = MatchState(match.state)
    if not can_transition(current, MatchState.FINAL):
        raise InvalidMatchState(current.value, MatchState.FINAL.value)
    require_both_entrants(match, MatchState.FINAL)

    needed = wins_needed(match.best_of)
    if match.score_a < needed and match.score_b < needed:
        raise ConfirmWinsNeeded(needed, match.best_of, match.score_a, match.score_b)

    winner = winner_of(match)
    if winner is None:
        raise NoWinnerDetermined(match.score_a, match.score_b)

    match.state = MatchState.FINAL
    match.completed_at = datetime.utcnow()
    return winner
