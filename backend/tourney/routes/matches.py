"""
Match runtime endpoints: score reports, confirmation, reset and scheduling.

Domain failures are raised as tourney.errors exceptions and rendered by the
app-level handler in tourney.main.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, ConfigDict, Field, HttpUrl
from sqlmodel import Session

from tourney.database import get_session
from tourney.models.match import Match, MatchState
from tourney.repository import SqlMatchRepository
from tourney.services.match_service import MatchService
from tourney.services.notifier import NotificationSink, get_notifier
from tourney.services.schedule_conflicts import coerce_timestamp

router = APIRouter()


def get_match_service(
    session: Session = Depends(get_session),
    notifier: NotificationSink = Depends(get_notifier),
) -> MatchService:
    return MatchService(SqlMatchRepository(session), notifier=notifier)


class ScoreReport(BaseModel):
    score_a: int = Field(ge=0)
    score_b: int = Field(ge=0)
    proof_urls: Optional[List[HttpUrl]] = None
    note: Optional[str] = None


class MatchUpdate(BaseModel):
    score_a: Optional[int] = Field(default=None, ge=0)
    score_b: Optional[int] = Field(default=None, ge=0)
    proof_urls: Optional[List[HttpUrl]] = None
    note: Optional[str] = None
    state: Optional[str] = None


class ScheduleRequest(BaseModel):
    # Kept as a string so malformed values surface as INVALID_TIMESTAMP
    scheduled_at: Optional[str] = None


class MatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tournament_id: str
    round: int
    match_index: int
    best_of: int
    slot_a: Optional[str] = None
    slot_b: Optional[str] = None
    score_a: int
    score_b: int
    state: MatchState
    scheduled_at: Optional[datetime] = None
    next_match_id_a: Optional[str] = None
    next_match_id_b: Optional[str] = None
    report: Optional[Dict[str, Any]] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ConflictListResponse(BaseModel):
    match_id: str
    scheduled_at: datetime
    conflicts: List[MatchResponse]


def match_to_response(m: Match) -> MatchResponse:
    return MatchResponse(
        id=m.id,
        tournament_id=m.tournament_id,
        round=m.round,
        match_index=m.match_index,
        best_of=m.best_of,
        slot_a=m.slot_a,
        slot_b=m.slot_b,
        score_a=m.score_a,
        score_b=m.score_b,
        state=m.state,
        scheduled_at=m.scheduled_at,
        next_match_id_a=m.next_match_id_a,
        next_match_id_b=m.next_match_id_b,
        report=m.report_json,
        created_at=m.created_at,
        started_at=m.started_at,
        completed_at=m.completed_at,
    )


def _proof_from(payload: BaseModel) -> Optional[Dict[str, Any]]:
    data = payload.model_dump(mode="json", include={"proof_urls", "note"}, exclude_none=True)
    return data or None


@router.get("/matches/{match_id}", response_model=MatchResponse)
def get_match(match_id: str, service: MatchService = Depends(get_match_service)) -> MatchResponse:
    return match_to_response(service.get_match(match_id))


@router.post("/matches/{match_id}/report", response_model=MatchResponse)
def report_match(
    match_id: str,
    payload: ScoreReport,
    service: MatchService = Depends(get_match_service),
) -> MatchResponse:
    """Submit a result. Scores are capped at ceil(best_of / 2)."""
    match = service.report_score(match_id, payload.score_a, payload.score_b, _proof_from(payload))
    return match_to_response(match)


@router.patch("/matches/{match_id}", response_model=MatchResponse)
def update_match(
    match_id: str,
    payload: MatchUpdate,
    service: MatchService = Depends(get_match_service),
) -> MatchResponse:
    """Partial update. A final match only accepts a retarget to a non-final state."""
    match = service.update_match(
        match_id,
        score_a=payload.score_a,
        score_b=payload.score_b,
        proof=_proof_from(payload),
        state=payload.state,
    )
    return match_to_response(match)


@router.post("/matches/{match_id}/start", response_model=MatchResponse)
def start_match(match_id: str, service: MatchService = Depends(get_match_service)) -> MatchResponse:
    return match_to_response(service.start_match(match_id))


@router.post("/matches/{match_id}/confirm", response_model=MatchResponse)
def confirm_match(match_id: str, service: MatchService = Depends(get_match_service)) -> MatchResponse:
    """Finalize the match and advance its winner. Idempotent on final matches."""
    return match_to_response(service.confirm_match(match_id))


@router.post("/matches/{match_id}/reject", response_model=MatchResponse)
def reject_match(match_id: str, service: MatchService = Depends(get_match_service)) -> MatchResponse:
    """Reset to live with zeroed scores. An already advanced winner is not retracted."""
    return match_to_response(service.reject_match(match_id))


@router.put("/matches/{match_id}/schedule", response_model=MatchResponse)
def schedule_match(
    match_id: str,
    payload: ScheduleRequest,
    service: MatchService = Depends(get_match_service),
) -> MatchResponse:
    """Set the start time; 409 SCHEDULE_CONFLICT lists the clashing matches."""
    return match_to_response(service.schedule_match(match_id, payload.scheduled_at))


@router.get("/matches/{match_id}/schedule/conflicts", response_model=ConflictListResponse)
def preview_schedule_conflicts(
    match_id: str,
    at: str = Query(...),
    service: MatchService = Depends(get_match_service),
) -> ConflictListResponse:
    """Dry run: which matches would block scheduling at ``at``."""
    conflicts = service.find_schedule_conflicts(match_id, at)
    return ConflictListResponse(
        match_id=match_id,
        scheduled_at=coerce_timestamp(at),
        conflicts=[match_to_response(c) for c in conflicts],
    )
