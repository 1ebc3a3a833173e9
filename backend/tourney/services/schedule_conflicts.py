"""
Scheduling conflict detection.

A team may not have two matches whose start times are within
SCHEDULE_BUFFER of each other, in any tournament. The buffer is symmetric and
does not depend on best_of: real match length is unknown up front.

Timestamps are stored as naive UTC; aware datetimes are converted.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Tuple

from tourney.errors import InvalidTimestamp
from tourney.models.match import Match
from tourney.repository import MatchRepository

# Hard-coded for V1
SCHEDULE_BUFFER = timedelta(hours=2)


def coerce_timestamp(value: Any) -> datetime:
    """Accept a datetime or ISO-8601 string; return naive UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            raise InvalidTimestamp(value)
    else:
        raise InvalidTimestamp(value)

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def conflict_window(when: datetime) -> Tuple[datetime, datetime]:
    """[when - buffer, when + buffer], inclusive on both ends."""
    return when - SCHEDULE_BUFFER, when + SCHEDULE_BUFFER


def find_conflicts(repo: MatchRepository, match: Match, when: datetime) -> List[Match]:
    """Other matches sharing an entrant with ``match`` inside the window around ``when``."""
    start, end = conflict_window(when)
    return repo.find_scheduled_between(start, end, match.entrants(), exclude_id=match.id)


def conflict_payload(match: Match) -> Dict[str, Any]:
    return {
        "id": match.id,
        "tournament_id": match.tournament_id,
        "round": match.round,
        "slot_a": match.slot_a,
        "slot_b": match.slot_b,
        "scheduled_at": match.scheduled_at.isoformat() if match.scheduled_at else None,
    }
