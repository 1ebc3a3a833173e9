"""
MatchService: the operations exposed to the API layer.

Each operation loads the match through the repository, takes the per-key
locks it needs, re-reads the row inside the lock, applies the lifecycle rules,
writes back and then publishes notifications. Domain failures surface as
``tourney.errors`` exceptions; storage failures propagate untouched.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from tourney.errors import BracketAlreadyExists, MatchNotFound, NotEnoughEntrants, ScheduleConflict
from tourney.models.match import Match, MatchState
from tourney.repository import MatchRepository
from tourney.services import advancement_service
from tourney.services.bracket_builder import build_bracket
from tourney.services.match_lifecycle import (
    apply_confirm,
    apply_report,
    apply_reset,
    apply_start,
    apply_update,
    normalize_best_of,
)
from tourney.services.notifier import (
    EVENT_MATCH_STATE,
    EVENT_SCHEDULE_UPDATE,
    EVENT_SCORE_UPDATE,
    NotificationSink,
    get_notifier,
    match_scope,
    safe_publish,
    team_scope,
    tournament_scope,
)
from tourney.services.schedule_conflicts import coerce_timestamp, conflict_payload, find_conflicts
from tourney.services.seeding import Registration, seed_entrants
from tourney.utils.locks import KeyedLocks, get_match_locks

logger = logging.getLogger(__name__)

MIN_ENTRANTS = 2


class MatchService:
    def __init__(
        self,
        repo: MatchRepository,
        notifier: Optional[NotificationSink] = None,
        locks: Optional[KeyedLocks] = None,
    ):
        self.repo = repo
        self.notifier = notifier if notifier is not None else get_notifier()
        self.locks = locks if locks is not None else get_match_locks()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_match(self, match_id: str) -> Match:
        match = self.repo.get(match_id)
        if match is None:
            raise MatchNotFound(match_id)
        return match

    def list_matches(self, tournament_id: str) -> List[Match]:
        return self.repo.list_for_tournament(tournament_id)

    def get_bracket(self, tournament_id: str) -> List[Dict[str, Any]]:
        """Matches grouped per round: [{"round", "best_of", "matches"}, ...]."""
        rounds: Dict[int, List[Match]] = {}
        for match in self.repo.list_for_tournament(tournament_id):
            rounds.setdefault(match.round, []).append(match)
        return [
            {"round": r, "best_of": rounds[r][0].best_of, "matches": rounds[r]}
            for r in sorted(rounds)
        ]

    # ------------------------------------------------------------------
    # Bracket construction
    # ------------------------------------------------------------------

    def build_bracket(self, tournament_id: str, registrations: Sequence[Registration]) -> List[Match]:
        """Seed approved registrations, build the bracket and persist it in bulk."""
        seeded = seed_entrants(registrations)
        if len(seeded) < MIN_ENTRANTS:
            raise NotEnoughEntrants(len(seeded), MIN_ENTRANTS)

        with self.locks.hold(tournament_scope(tournament_id)):
            if self.repo.exists_for_tournament(tournament_id):
                raise BracketAlreadyExists(tournament_id)
            matches = build_bracket(tournament_id, seeded)
            return self.repo.insert_many(matches)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def report_score(
        self,
        match_id: str,
        score_a: int,
        score_b: int,
        proof: Optional[Dict[str, Any]] = None,
    ) -> Match:
        match = self.get_match(match_id)
        with self.locks.hold(match_id):
            match = self.repo.refresh(match)
            self._normalize(match)
            apply_report(match, score_a, score_b, proof)
            match = self.repo.save(match)
        self._emit_score(match)
        return match

    def update_match(
        self,
        match_id: str,
        score_a: Optional[int] = None,
        score_b: Optional[int] = None,
        proof: Optional[Dict[str, Any]] = None,
        state: Optional[str] = None,
    ) -> Match:
        match = self.get_match(match_id)
        with self.locks.hold(match_id):
            match = self.repo.refresh(match)
            self._normalize(match)
            state_changed = apply_update(match, score_a, score_b, proof, state)
            match = self.repo.save(match)
        self._emit_score(match)
        if state_changed:
            self._emit_state(match)
        return match

    def start_match(self, match_id: str) -> Match:
        match = self.get_match(match_id)
        with self.locks.hold(match_id):
            match = self.repo.refresh(match)
            apply_start(match)
            match = self.repo.save(match)
        self._emit_state(match)
        return match

    def confirm_match(self, match_id: str) -> Match:
        """Finalize and advance the winner. Confirming a final match is a no-op."""
        match = self.get_match(match_id)
        if match.state == MatchState.FINAL:
            return match

        link = match.next_link()
        with self.locks.hold(match_id, link[0] if link else None):
            match = self.repo.refresh(match)
            if match.state == MatchState.FINAL:
                return match
            self._normalize(match)
            winner = apply_confirm(match)
            match = self.repo.save(match)
            logger.info("Match %s final (%d-%d), winner %s", match.id, match.score_a, match.score_b, winner)
            self._emit_state(match)
            advancement_service.advance_winner(self.repo, self.notifier, match, winner)
        return self.repo.refresh(match)

    def reject_match(self, match_id: str) -> Match:
        """
        Reset a reported/live/final match to live with zeroed scores.

        Does not retract a winner already advanced into the next round; the
        organizer corrects downstream matches separately.
        """
        match = self.get_match(match_id)
        with self.locks.hold(match_id):
            match = self.repo.refresh(match)
            was_final = match.state == MatchState.FINAL
            apply_reset(match)
            match = self.repo.save(match)
        if was_final and match.next_link() is not None:
            logger.warning("Match %s reset after final; advanced winner left in place", match.id)
        self._emit_score(match)
        self._emit_state(match)
        return match

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def find_schedule_conflicts(self, match_id: str, when: Any) -> List[Match]:
        """Dry run of schedule_match: conflicting matches, nothing committed."""
        moment = coerce_timestamp(when)
        match = self.get_match(match_id)
        return find_conflicts(self.repo, match, moment)

    def schedule_match(self, match_id: str, when: Any) -> Match:
        """
        Commit a start time unless an entrant already plays within the buffer.

        The conflict check and the write run under locks on the match and on
        every entrant's calendar, so two commits for the same team serialize.
        If an entrant arrived (by advancement) between the first read and the
        locked re-read, the locks are released and taken again for the new
        entrant set.
        """
        moment = coerce_timestamp(when)
        match = self.get_match(match_id)
        while True:
            team_keys = [team_scope(e) for e in match.entrants()]
            with self.locks.hold(match_id, *team_keys):
                match = self.repo.refresh(match)
                if [team_scope(e) for e in match.entrants()] != team_keys:
                    logger.info("Entrants of match %s changed while locking; retrying", match.id)
                    continue
                conflicts = find_conflicts(self.repo, match, moment)
                if conflicts:
                    logger.warning(
                        "Rejected schedule for match %s at %s: %d conflict(s)",
                        match.id,
                        moment.isoformat(),
                        len(conflicts),
                    )
                    raise ScheduleConflict([conflict_payload(c) for c in conflicts])
                match.scheduled_at = moment
                match = self.repo.save(match)
                break

        logger.info("Scheduled match %s at %s", match.id, moment.isoformat())
        payload = {
            "match_id": match.id,
            "tournament_id": match.tournament_id,
            "scheduled_at": moment.isoformat(),
        }
        scopes = [match_scope(match.id), tournament_scope(match.tournament_id)]
        scopes.extend(team_scope(e) for e in match.entrants())
        for scope in scopes:
            safe_publish(self.notifier, scope, EVENT_SCHEDULE_UPDATE, payload)
        return match

    # ------------------------------------------------------------------
    # Repair
    # ------------------------------------------------------------------

    def resolve_all_advancements(self, tournament_id: str) -> Dict[str, int]:
        with self.locks.hold(tournament_scope(tournament_id)):
            return advancement_service.resolve_all_advancements(self.repo, tournament_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _normalize(self, match: Match) -> None:
        if normalize_best_of(match):
            self.repo.save(match)

    def _emit_score(self, match: Match) -> None:
        payload = {"match_id": match.id, "score_a": match.score_a, "score_b": match.score_b}
        safe_publish(self.notifier, match_scope(match.id), EVENT_SCORE_UPDATE, payload)
        safe_publish(self.notifier, tournament_scope(match.tournament_id), EVENT_SCORE_UPDATE, payload)

    def _emit_state(self, match: Match) -> None:
        payload = {"match_id": match.id, "state": MatchState(match.state).value}
        safe_publish(self.notifier, match_scope(match.id), EVENT_MATCH_STATE, payload)
        safe_publish(self.notifier, tournament_scope(match.tournament_id), EVENT_MATCH_STATE, payload)
