"""
Advancement: when a match is finalized, write its winner into the slot of the
match it feeds.

Online advancement is a single hop; the downstream match still has to be
played and confirmed on its own. Chains of byes are resolved at bracket
construction time instead (see bracket_builder).
"""
import logging
from typing import Dict, Optional

from tourney.models.match import SLOT_A, SLOT_B, Match, MatchState
from tourney.repository import MatchRepository
from tourney.services.notifier import (
    EVENT_MATCH_UPDATE,
    EVENT_SCORE_UPDATE,
    NotificationSink,
    safe_publish,
    tournament_scope,
)

logger = logging.getLogger(__name__)


def place_in_slot(match: Match, slot: str, entrant: Optional[str]) -> None:
    if slot == SLOT_A:
        match.slot_a = entrant
    elif slot == SLOT_B:
        match.slot_b = entrant
    else:
        raise ValueError(f"Unknown slot: {slot!r}")


def slot_value(match: Match, slot: str) -> Optional[str]:
    return match.slot_a if slot == SLOT_A else match.slot_b


def winner_of(match: Match) -> Optional[str]:
    """Entrant on the side with the strictly higher score, else None."""
    if match.score_a > match.score_b:
        return match.slot_a
    if match.score_b > match.score_a:
        return match.slot_b
    return None


def advance_winner(
    repo: MatchRepository,
    notifier: NotificationSink,
    match: Match,
    winner: str,
) -> Optional[Match]:
    """
    Write ``winner`` into the downstream slot of a finalized match.

    Overwrites whatever the slot held, so a corrected result replaces the
    previously advanced entrant. Returns the updated downstream match, or None
    for the championship (or a dangling link).
    """
    link = match.next_link()
    if link is None:
        return None
    next_id, slot = link

    downstream = repo.get(next_id)
    if downstream is None:
        logger.warning("Match %s links to missing match %s; nothing advanced", match.id, next_id)
        return None

    place_in_slot(downstream, slot, winner)
    downstream = repo.save(downstream)
    logger.info("Advanced winner %s to match %s slot %s", winner, next_id, slot)

    scope = tournament_scope(match.tournament_id)
    safe_publish(notifier, scope, EVENT_MATCH_UPDATE, {"match": match_payload(downstream)})
    safe_publish(
        notifier,
        scope,
        EVENT_SCORE_UPDATE,
        {"match_id": downstream.id, "slot_a": downstream.slot_a, "slot_b": downstream.slot_b},
    )
    return downstream


def resolve_all_advancements(repo: MatchRepository, tournament_id: str) -> Dict[str, int]:
    """
    Re-apply advancement for every finalized match of a tournament.

    Repair path for interrupted confirmations or bulk-imported results. Only
    empty downstream slots are filled, so running it twice changes nothing.

    Returns:
        Dict with:
        - matches_processed: finalized matches with a winner that were examined
        - slots_filled: downstream slots written
        - unknown_before: matches with at least one empty slot before
        - unknown_after: matches with at least one empty slot after
    """
    matches = repo.list_for_tournament(tournament_id)
    by_id = {m.id: m for m in matches}
    unknown_before = sum(1 for m in matches if m.slot_a is None or m.slot_b is None)

    matches_processed = 0
    slots_filled = 0
    # list_for_tournament is ordered by round, so earlier rounds fill first
    for match in matches:
        if match.state != MatchState.FINAL:
            continue
        winner = winner_of(match)
        if winner is None:
            continue
        matches_processed += 1
        link = match.next_link()
        if link is None:
            continue
        next_id, slot = link
        downstream = by_id.get(next_id)
        if downstream is None or slot_value(downstream, slot) is not None:
            continue
        place_in_slot(downstream, slot, winner)
        repo.save(downstream)
        slots_filled += 1

    unknown_after = sum(1 for m in by_id.values() if m.slot_a is None or m.slot_b is None)
    logger.info(
        "Resolved advancements for tournament %s: processed=%d filled=%d",
        tournament_id,
        matches_processed,
        slots_filled,
    )
    return {
        "matches_processed": matches_processed,
        "slots_filled": slots_filled,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }


def match_payload(match: Match) -> Dict:
    """JSON-friendly snapshot used in notification payloads."""
    return {
        "id": match.id,
        "tournament_id": match.tournament_id,
        "round": match.round,
        "best_of": match.best_of,
        "slot_a": match.slot_a,
        "slot_b": match.slot_b,
        "score_a": match.score_a,
        "score_b": match.score_b,
        "state": MatchState(match.state).value,
        "scheduled_at": match.scheduled_at.isoformat() if match.scheduled_at else None,
    }
