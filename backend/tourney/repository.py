"""
Storage port for match documents.

The services only talk to a ``MatchRepository``; ``SqlMatchRepository`` is the
SQLModel-backed implementation used by the API and the tests. Each write is a
single-row update by id (no multi-row transactions are assumed by callers).
"""

from datetime import datetime
from typing import Iterable, List, Optional, Protocol, Sequence

from sqlalchemy import or_
from sqlmodel import Session, select

from tourney.models.match import Match


class MatchRepository(Protocol):
    def get(self, match_id: str) -> Optional[Match]: ...

    def list_for_tournament(self, tournament_id: str) -> List[Match]: ...

    def exists_for_tournament(self, tournament_id: str) -> bool: ...

    def find_scheduled_between(
        self,
        start: datetime,
        end: datetime,
        entrants: Sequence[str],
        exclude_id: Optional[str] = None,
    ) -> List[Match]: ...

    def insert_many(self, matches: Iterable[Match]) -> List[Match]: ...

    def save(self, match: Match) -> Match: ...

    def refresh(self, match: Match) -> Match: ...


class SqlMatchRepository:
    def __init__(self, session: Session):
        self.session = session

    def get(self, match_id: str) -> Optional[Match]:
        return self.session.get(Match, match_id)

    def list_for_tournament(self, tournament_id: str) -> List[Match]:
        """Stable order: round, then position inside the round."""
        return list(
            self.session.exec(
                select(Match)
                .where(Match.tournament_id == tournament_id)
                .order_by(Match.round, Match.match_index)
            ).all()
        )

    def exists_for_tournament(self, tournament_id: str) -> bool:
        return self.session.exec(select(Match.id).where(Match.tournament_id == tournament_id)).first() is not None

    def find_scheduled_between(
        self,
        start: datetime,
        end: datetime,
        entrants: Sequence[str],
        exclude_id: Optional[str] = None,
    ) -> List[Match]:
        """Matches of any tournament scheduled in [start, end] that involve one of ``entrants``."""
        entrants = list(entrants)
        if not entrants:
            return []
        stmt = select(Match).where(
            Match.scheduled_at.is_not(None),
            Match.scheduled_at >= start,
            Match.scheduled_at <= end,
            or_(Match.slot_a.in_(entrants), Match.slot_b.in_(entrants)),
        )
        if exclude_id is not None:
            stmt = stmt.where(Match.id != exclude_id)
        return list(self.session.exec(stmt.order_by(Match.scheduled_at, Match.id)).all())

    def insert_many(self, matches: Iterable[Match]) -> List[Match]:
        matches = list(matches)
        self.session.add_all(matches)
        self.session.commit()
        for m in matches:
            self.session.refresh(m)
        return matches

    def save(self, match: Match) -> Match:
        self.session.add(match)
        self.session.commit()
        self.session.refresh(match)
        return match

    def refresh(self, match: Match) -> Match:
        """Re-read a match from storage, discarding stale in-session state."""
        self.session.refresh(match)
        return match
