"""Scheduling: the 2-hour per-team buffer, timestamp parsing and schedule notifications."""
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest
from sqlmodel import Session, SQLModel, create_engine, select

from tourney.errors import InvalidTimestamp, MatchNotFound, ScheduleConflict
from tourney.models.match import Match
from tourney.repository import SqlMatchRepository
from tourney.services.match_service import MatchService
from tourney.services.notifier import RecordingNotifier
from tourney.services.schedule_conflicts import SCHEDULE_BUFFER, coerce_timestamp, conflict_window
from tourney.utils.locks import KeyedLocks

T = datetime(2026, 3, 14, 18, 0, 0)


def _add(session: Session, match_id, slot_a, slot_b, tournament_id="T1", scheduled_at=None, round=1, match_index=0):
    match = Match(
        id=match_id,
        tournament_id=tournament_id,
        round=round,
        match_index=match_index,
        best_of=3 if round == 1 else 5,
        slot_a=slot_a,
        slot_b=slot_b,
        scheduled_at=scheduled_at,
    )
    session.add(match)
    session.commit()
    return match


@pytest.fixture
def booked(session: Session):
    """alpha already plays at T."""
    _add(session, "m1", "alpha", "bravo", scheduled_at=T)
    _add(session, "m2", "alpha", "charlie", match_index=1)
    _add(session, "m3", "delta", "echo", match_index=2)


def test_buffer_is_two_hours():
    assert SCHEDULE_BUFFER == timedelta(hours=2)
    assert conflict_window(T) == (T - timedelta(hours=2), T + timedelta(hours=2))


def test_schedule_inside_buffer_is_rejected(service: MatchService, booked):
    with pytest.raises(ScheduleConflict) as exc:
        service.schedule_match("m2", T + timedelta(hours=1))

    assert [c["id"] for c in exc.value.conflicts] == ["m1"]
    conflict = exc.value.params["conflicts"][0]
    assert conflict["scheduled_at"] == T.isoformat()
    assert conflict["tournament_id"] == "T1"
    assert service.get_match("m2").scheduled_at is None


def test_schedule_before_existing_match_is_rejected(service: MatchService, booked):
    with pytest.raises(ScheduleConflict):
        service.schedule_match("m2", T - timedelta(minutes=90))


def test_buffer_edge_is_inclusive(service: MatchService, booked):
    with pytest.raises(ScheduleConflict):
        service.schedule_match("m2", T + timedelta(hours=2))
    with pytest.raises(ScheduleConflict):
        service.schedule_match("m2", T - timedelta(hours=2))

    match = service.schedule_match("m2", T + timedelta(hours=2, seconds=1))
    assert match.scheduled_at == T + timedelta(hours=2, seconds=1)


def test_schedule_outside_buffer_succeeds(service: MatchService, booked):
    match = service.schedule_match("m2", T + timedelta(hours=3))
    assert match.scheduled_at == T + timedelta(hours=3)


def test_unrelated_teams_can_share_a_time(service: MatchService, booked):
    match = service.schedule_match("m3", T)
    assert match.scheduled_at == T


def test_conflicts_span_tournaments(service: MatchService, session: Session, booked):
    _add(session, "other", "bravo", "zulu", tournament_id="T2")

    with pytest.raises(ScheduleConflict) as exc:
        service.schedule_match("other", T + timedelta(minutes=30))
    assert exc.value.conflicts[0]["id"] == "m1"


def test_rescheduling_ignores_the_match_itself(service: MatchService, booked):
    match = service.schedule_match("m1", T + timedelta(minutes=30))
    assert match.scheduled_at == T + timedelta(minutes=30)


def test_match_without_entrants_never_conflicts(service: MatchService, session: Session, booked):
    _add(session, "tbd", None, None, round=2)
    match = service.schedule_match("tbd", T)
    assert match.scheduled_at == T


def test_iso_string_with_offset_is_stored_as_utc(service: MatchService, booked):
    match = service.schedule_match("m3", "2026-03-14T23:00:00+02:00")
    assert match.scheduled_at == datetime(2026, 3, 14, 21, 0, 0)

    with pytest.raises(ScheduleConflict):
        # 19:30 UTC, 90 minutes after alpha's match
        service.schedule_match("m2", "2026-03-14T19:30:00Z")


@pytest.mark.parametrize("value", ["", "tomorrow", "2026-13-01T00:00:00", None, 12345])
def test_invalid_timestamps_are_rejected(service: MatchService, booked, value):
    with pytest.raises(InvalidTimestamp):
        service.schedule_match("m2", value)


def test_coerce_timestamp():
    assert coerce_timestamp(T) == T
    assert coerce_timestamp("2026-03-14T18:00:00") == T
    assert coerce_timestamp("2026-03-14T18:00:00Z") == T
    aware = datetime(2026, 3, 14, 13, 0, tzinfo=timezone(timedelta(hours=-5)))
    assert coerce_timestamp(aware) == T


def test_dry_run_reports_without_committing(service: MatchService, booked):
    conflicts = service.find_schedule_conflicts("m2", T + timedelta(hours=1))
    assert [c.id for c in conflicts] == ["m1"]
    assert service.get_match("m2").scheduled_at is None

    assert service.find_schedule_conflicts("m2", T + timedelta(hours=5)) == []


def test_schedule_unknown_match(service: MatchService):
    with pytest.raises(MatchNotFound):
        service.schedule_match("nope", T)


def test_schedule_notifies_match_tournament_and_teams(service: MatchService, booked, notifier):
    service.schedule_match("m2", T + timedelta(hours=4))

    payload = {
        "match_id": "m2",
        "tournament_id": "T1",
        "scheduled_at": (T + timedelta(hours=4)).isoformat(),
    }
    for scope in ("match:m2", "tournament:T1", "team:alpha", "team:charlie"):
        assert notifier.for_scope(scope) == [("schedule:update", payload)]
    assert notifier.for_scope("team:bravo") == []


def test_rejected_schedule_sends_nothing(service: MatchService, booked, notifier):
    with pytest.raises(ScheduleConflict):
        service.schedule_match("m2", T)
    assert notifier.events == []


# ----------------------------------------------------------------------------
# Concurrency
# ----------------------------------------------------------------------------

WAIT = 5.0


def test_concurrent_schedules_for_one_team_commit_once(tmp_path):
    # File-backed engine: each thread gets its own connection and session.
    engine = create_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(engine)
    with Session(engine) as setup:
        _add(setup, "m1", "alpha", "bravo")
        _add(setup, "m2", "alpha", "charlie", match_index=1)

    locks = KeyedLocks()
    ready = threading.Barrier(3)
    outcomes = {}

    def attempt(match_id, when):
        with Session(engine) as thread_session:
            service = MatchService(SqlMatchRepository(thread_session), notifier=RecordingNotifier(), locks=locks)
            ready.wait(WAIT)
            try:
                service.schedule_match(match_id, when)
                outcomes[match_id] = "scheduled"
            except ScheduleConflict:
                outcomes[match_id] = "conflict"

    threads = [
        threading.Thread(target=attempt, args=("m1", T)),
        threading.Thread(target=attempt, args=("m2", T + timedelta(hours=1))),
    ]
    # Both requests queue behind alpha's calendar, then run one after the other.
    with locks.hold("team:alpha"):
        for thread in threads:
            thread.start()
        ready.wait(WAIT)
        time.sleep(0.1)
    for thread in threads:
        thread.join(WAIT)

    assert sorted(outcomes.values()) == ["conflict", "scheduled"]
    with Session(engine) as check:
        committed = [m.id for m in check.exec(select(Match)).all() if m.scheduled_at is not None]
    assert len(committed) == 1
    assert outcomes[committed[0]] == "scheduled"
    assert len(locks) == 0
    engine.dispose()


class _AdvancingRepository(SqlMatchRepository):
    """Fills slot B on the first locked re-read, as a sibling's advancement would."""

    def __init__(self, session, entrant):
        super().__init__(session)
        self.entrant = entrant
        self.advanced = False

    def refresh(self, match):
        if not self.advanced:
            self.advanced = True
            match.slot_b = self.entrant
            self.session.add(match)
            self.session.commit()
        return super().refresh(match)


class _RecordingLocks(KeyedLocks):
    def __init__(self):
        super().__init__()
        self.requests = []

    def hold(self, *keys):
        self.requests.append({k for k in keys if k})
        return super().hold(*keys)


def test_entrant_arriving_while_locking_is_locked_and_checked(session: Session, notifier):
    _add(session, "busy", "late", "zulu", scheduled_at=T)
    _add(session, "semi", "alpha", None, round=2)
    locks = _RecordingLocks()
    service = MatchService(_AdvancingRepository(session, "late"), notifier=notifier, locks=locks)

    with pytest.raises(ScheduleConflict) as exc:
        service.schedule_match("semi", T + timedelta(minutes=30))

    assert [c["id"] for c in exc.value.conflicts] == ["busy"]
    assert locks.requests == [{"semi", "team:alpha"}, {"semi", "team:alpha", "team:late"}]
