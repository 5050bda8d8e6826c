from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session, select

from courtside.auth import get_current_actor_id
from courtside.database import get_session
from courtside.models.match import MATCH_TYPE_INDIVIDUAL, Match
from courtside.routes.matches import MatchResponse
from courtside.services import tournament_lifecycle
from courtside.services.match_state import create_match
from courtside.utils.version_guards import get_tournament_or_404

router = APIRouter()


class TournamentResponse(BaseModel):
    id: int
    name: str
    status: str
    umpire_mode: str
    is_public: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class MatchCreate(BaseModel):
    match_type: str = MATCH_TYPE_INDIVIDUAL
    round_name: Optional[str] = None
    round_index: Optional[int] = None
    slot_index: Optional[int] = None
    match_number: Optional[int] = None
    court_number: Optional[int] = None
    parent_match_id: Optional[int] = None
    next_match_id: Optional[int] = None
    winner_source_match_a: Optional[int] = None
    winner_source_match_b: Optional[int] = None


@router.post("/tournaments/{tournament_id}/publish", response_model=TournamentResponse)
def publish_tournament(
    tournament_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    """draft -> published (needs at least one active entry)"""
    return tournament_lifecycle.publish_tournament(session, tournament_id, actor_id)


@router.post("/tournaments/{tournament_id}/finish", response_model=TournamentResponse)
def finish_tournament(
    tournament_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return tournament_lifecycle.finish_tournament(session, tournament_id, actor_id)


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchResponse])
def list_matches(tournament_id: int, session: Session = Depends(get_session)):
    get_tournament_or_404(session, tournament_id)
    return session.exec(
        select(Match)
        .where(Match.tournament_id == tournament_id)
        .order_by(Match.round_index, Match.slot_index, Match.id)
    ).all()


@router.post("/tournaments/{tournament_id}/matches", response_model=MatchResponse, status_code=201)
def post_match(
    tournament_id: int,
    payload: MatchCreate,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return create_match(session, tournament_id, actor_id, **payload.model_dump())
