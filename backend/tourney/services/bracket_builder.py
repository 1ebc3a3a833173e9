"""
Single-elimination bracket construction.

Builds every match of a tournament in one pass, round 1 through the
championship, so forward links can be wired before anything is persisted:

1. Pad the seeded list with empty slots up to the next power of two.
2. Pair round 1 as (padded[i], padded[n-1-i]): top seed against bottom seed.
3. Create every round; round r holds n / 2**r matches with pre-assigned ids.
4. Link match i of round r to match i // 2 of round r+1 (even -> slot A, odd -> slot B).
5. Fill round 1 and resolve byes, cascading through any later match whose
   feeders are all settled.

Pairs are placed into round-1 positions in folded bracket order (for 8 slots:
(1,8), (4,5), (3,6), (2,7)) so the two top seeds can only meet in the final.

No I/O happens here; the caller persists the returned matches.
"""

import logging
import uuid
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from tourney.models.match import Match, MatchState, required_best_of, wins_needed
from tourney.services.advancement_service import place_in_slot

logger = logging.getLogger(__name__)

Slot = Optional[str]


def _new_match_id() -> str:
    return str(uuid.uuid4())


def bracket_size(entrant_count: int) -> int:
    """Smallest power of two >= entrant_count (minimum 1)."""
    size = 1
    while size < entrant_count:
        size *= 2
    return size


def pad_entrants(seeded: Sequence[str]) -> List[Slot]:
    padded: List[Slot] = list(seeded)
    padded.extend([None] * (bracket_size(len(seeded)) - len(seeded)))
    return padded


def pair_round_one(padded: Sequence[Slot]) -> List[Tuple[Slot, Slot]]:
    n = len(padded)
    return [(padded[i], padded[n - 1 - i]) for i in range(n // 2)]


def bracket_order(pair_count: int) -> List[int]:
    """
    Round-1 position -> pair index.

    Each doubling step places pair p next to its mirror (size - 1 - p),
    alternating orientation so adjacent halves stay balanced.
    """
    if pair_count <= 0:
        return []
    order = [0]
    size = 1
    while size < pair_count:
        size *= 2
        expanded: List[int] = []
        for position, p in enumerate(order):
            mirror = size - 1 - p
            if position % 2 == 0:
                expanded.extend([p, mirror])
            else:
                expanded.extend([mirror, p])
        order = expanded
    return order


def _finalize_bye(match: Match, now: datetime) -> str:
    """Auto-win the lone entrant of ``match``; returns that entrant."""
    needed = wins_needed(match.best_of)
    if match.slot_a is not None:
        match.score_a, match.score_b = needed, 0
        winner = match.slot_a
    else:
        match.score_a, match.score_b = 0, needed
        winner = match.slot_b
    match.state = MatchState.FINAL
    match.completed_at = now
    return winner


def build_bracket(
    tournament_id: str,
    seeded_entrants: Sequence[str],
    id_factory: Callable[[], str] = _new_match_id,
) -> List[Match]:
    """
    Build all matches for a single-elimination bracket.

    Args:
        tournament_id: Owning tournament reference
        seeded_entrants: Entrant references in seeding order
        id_factory: Generates match ids (uuid4 strings by default)

    Returns:
        Matches ordered by round, then position in round
    """
    padded = pad_entrants(seeded_entrants)
    n = len(padded)
    total_rounds = n.bit_length() - 1
    now = datetime.utcnow()

    rounds: Dict[int, List[Match]] = {}
    for r in range(1, total_rounds + 1):
        rounds[r] = [
            Match(
                id=id_factory(),
                tournament_id=tournament_id,
                round=r,
                match_index=i,
                best_of=required_best_of(r),
                state=MatchState.SCHEDULED,
                created_at=now,
            )
            for i in range(n >> r)
        ]

    for r in range(1, total_rounds):
        parents = rounds[r + 1]
        for i, match in enumerate(rounds[r]):
            parent = parents[i // 2]
            if i % 2 == 0:
                match.next_match_id_a = parent.id
            else:
                match.next_match_id_b = parent.id

    if total_rounds == 0:
        return []

    pairs = pair_round_one(padded)
    for position, pair_index in enumerate(bracket_order(len(pairs))):
        match = rounds[1][position]
        match.slot_a, match.slot_b = pairs[pair_index]

    by_id = {m.id: m for matches in rounds.values() for m in matches}
    byes = _resolve_byes(rounds, by_id, now)

    logger.info(
        "Built bracket for tournament %s: %d entrants, %d slots, %d rounds, %d byes",
        tournament_id,
        len(seeded_entrants),
        n,
        total_rounds,
        byes,
    )
    return [m for r in range(1, total_rounds + 1) for m in rounds[r]]


def _resolve_byes(rounds: Dict[int, List[Match]], by_id: Dict[str, Match], now: datetime) -> int:
    """
    Finalize every match that has exactly one entrant and can never get a
    second one, pushing the entrant downstream. Returns the number of byes.

    A match is settled once it is finalized by a bye or is permanently empty
    (both slots empty with settled feeders); a later-round match is only
    examined when both of its feeders are settled.
    """
    settled: Dict[str, bool] = {}
    byes = 0
    for r in sorted(rounds):
        for match in rounds[r]:
            if r > 1:
                feeders = rounds[r - 1][2 * match.match_index : 2 * match.match_index + 2]
                if not all(settled.get(f.id) for f in feeders):
                    continue
            filled = match.entrants()
            if len(filled) == 1:
                winner = _finalize_bye(match, now)
                link = match.next_link()
                if link is not None:
                    next_id, slot = link
                    place_in_slot(by_id[next_id], slot, winner)
                settled[match.id] = True
                byes += 1
            elif not filled:
                settled[match.id] = True
    return byes
