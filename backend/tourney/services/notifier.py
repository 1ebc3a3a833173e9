"""Notification sinks for match events.

The core never talks to a transport. It publishes ``(scope, event, payload)``
triples where scope is ``match:<id>``, ``tournament:<id>`` or ``team:<id>``;
a real-time layer subscribes to those scopes.

Delivery is fire-and-forget: ``safe_publish`` logs a failing sink and returns,
so a notification problem never undoes the state change that caused it.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol, Tuple

logger = logging.getLogger(__name__)

EVENT_SCORE_UPDATE = "score:update"
EVENT_MATCH_STATE = "match:state"
EVENT_MATCH_UPDATE = "match:update"
EVENT_SCHEDULE_UPDATE = "schedule:update"


def match_scope(match_id: str) -> str:
    return f"match:{match_id}"


def tournament_scope(tournament_id: str) -> str:
    return f"tournament:{tournament_id}"


def team_scope(team_id: str) -> str:
    return f"team:{team_id}"


class NotificationSink(Protocol):
    def publish(self, scope: str, event: str, payload: Dict[str, Any]) -> None: ...


class LoggingNotifier:
    """Default sink: writes every event to the log."""

    def publish(self, scope: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info("Emitting %s to %s: %s", event, scope, payload)


class RecordingNotifier:
    """
    Keeps published events in memory.

    Used by tests and by callers that want to batch events after a request.
    """

    def __init__(self):
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    def publish(self, scope: str, event: str, payload: Dict[str, Any]) -> None:
        self.events.append((scope, event, payload))

    def for_scope(self, scope: str) -> List[Tuple[str, Dict[str, Any]]]:
        return [(event, payload) for s, event, payload in self.events if s == scope]

    def clear(self) -> None:
        self.events.clear()


def safe_publish(sink: NotificationSink, scope: str, event: str, payload: Dict[str, Any]) -> bool:
    """Publish one event; returns False (and logs) if the sink raised."""
    try:
        sink.publish(scope, event, payload)
        return True
    except Exception:
        logger.exception("Failed to deliver %s to %s", event, scope)
        return False


# Singleton instance
_notifier: Optional[NotificationSink] = None


def get_notifier() -> NotificationSink:
    """Get or create the singleton notification sink."""
    global _notifier
    if _notifier is None:
        _notifier = LoggingNotifier()
    return _notifier
