from typing import Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tourney.routes.matches import MatchResponse, get_match_service, match_to_response
from tourney.services.match_service import MatchService
from tourney.services.seeding import Registration

router = APIRouter()


class EntrantIn(BaseModel):
    team_id: str = Field(min_length=1)
    seed: Optional[int] = Field(default=None, ge=1)


class BracketCreate(BaseModel):
    """Approved registrations in registration order."""

    entrants: List[EntrantIn]


class BracketRound(BaseModel):
    round: int
    best_of: int
    matches: List[MatchResponse]


class BracketResponse(BaseModel):
    tournament_id: str
    rounds: List[BracketRound]


class ResolveAdvancementsResponse(BaseModel):
    matches_processed: int
    slots_filled: int
    unknown_before: int
    unknown_after: int


def _bracket_response(tournament_id: str, service: MatchService) -> BracketResponse:
    rounds = [
        BracketRound(
            round=r["round"],
            best_of=r["best_of"],
            matches=[match_to_response(m) for m in r["matches"]],
        )
        for r in service.get_bracket(tournament_id)
    ]
    return BracketResponse(tournament_id=tournament_id, rounds=rounds)


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketResponse, status_code=201)
def create_bracket(
    tournament_id: str,
    payload: BracketCreate,
    service: MatchService = Depends(get_match_service),
) -> BracketResponse:
    """Seed the entrants and create every match of the bracket. Byes are resolved immediately."""
    registrations = [Registration(team_id=e.team_id, seed=e.seed) for e in payload.entrants]
    service.build_bracket(tournament_id, registrations)
    return _bracket_response(tournament_id, service)


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketResponse)
def get_bracket(tournament_id: str, service: MatchService = Depends(get_match_service)) -> BracketResponse:
    return _bracket_response(tournament_id, service)


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: str, service: MatchService = Depends(get_match_service)) -> List[MatchResponse]:
    """All matches of a tournament. Stable order: round, position in round."""
    return [match_to_response(m) for m in service.list_matches(tournament_id)]


@router.post(
    "/tournaments/{tournament_id}/bracket/resolve-advancements",
    response_model=ResolveAdvancementsResponse,
)
def resolve_advancements(
    tournament_id: str,
    service: MatchService = Depends(get_match_service),
) -> Dict[str, int]:
    """
    Re-apply advancement for every final match (repair path).

    Idempotent: only empty downstream slots are filled.
    """
    return service.resolve_all_advancements(tournament_id)
