"""
Point ledger endpoints. Submitting the same client_key twice is safe: the
second call returns the current score without counting again.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from courtside.auth import get_current_actor_id
from courtside.database import get_session
from courtside.services import scoring_ledger
from courtside.services.checkin import verify_day_token

router = APIRouter()


class PointSubmit(BaseModel):
    side: str  # "A" | "B"
    client_key: str = Field(min_length=1, max_length=128)
    expected_version: Optional[int] = None


class UndoRequest(BaseModel):
    expected_version: Optional[int] = None


class ScoreOverride(BaseModel):
    game_count_a: int = Field(ge=0)
    game_count_b: int = Field(ge=0)
    final_score: Optional[str] = None
    expected_version: Optional[int] = None


class AggregateResponse(BaseModel):
    match_id: int
    game_count_a: int
    game_count_b: int
    version: int


class PointResponse(BaseModel):
    id: int
    point_type: str
    client_key: str
    is_undone: bool
    server_received_at: datetime
    undone_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScoreAuditResponse(BaseModel):
    id: int
    actor_id: int
    before_game_count_a: int
    before_game_count_b: int
    after_game_count_a: int
    after_game_count_b: int
    before_final_score: Optional[str] = None
    after_final_score: Optional[str] = None
    match_version: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenVerify(BaseModel):
    day_token: str


class TokenVerifyResponse(BaseModel):
    valid: bool
    entry_id: int
    team_id: int


@router.post("/scoring/matches/{match_id}/points", response_model=AggregateResponse)
def submit_point(
    match_id: int,
    payload: PointSubmit,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    result = scoring_ledger.append_point(
        session, match_id, actor_id, payload.side, payload.client_key, payload.expected_version
    )
    return result.to_dict()


@router.post("/scoring/matches/{match_id}/undo", response_model=AggregateResponse)
def undo_point(
    match_id: int,
    payload: Optional[UndoRequest] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    payload = payload or UndoRequest()
    return scoring_ledger.undo_last_point(session, match_id, actor_id, payload.expected_version).to_dict()


@router.get("/scoring/matches/{match_id}/points", response_model=List[PointResponse])
def list_points(match_id: int, include_undone: bool = True, session: Session = Depends(get_session)):
    return scoring_ledger.list_points(session, match_id, include_undone=include_undone)


@router.put("/scoring/matches/{match_id}/score", response_model=AggregateResponse)
def override_score(
    match_id: int,
    payload: ScoreOverride,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    result = scoring_ledger.override_score(
        session,
        match_id,
        actor_id,
        payload.game_count_a,
        payload.game_count_b,
        final_score=payload.final_score,
        expected_version=payload.expected_version,
    )
    return result.to_dict()


@router.get("/scoring/matches/{match_id}/audit", response_model=List[ScoreAuditResponse])
def list_score_audit(
    match_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return scoring_ledger.list_score_audit(session, match_id)


@router.post("/scoring/matches/{match_id}/verify-token", response_model=TokenVerifyResponse)
def verify_token(match_id: int, payload: TokenVerify, session: Session = Depends(get_session)):
    """Check a day token against the checked-in entries of the match's tournament."""
    entry = verify_day_token(session, match_id, payload.day_token)
    return TokenVerifyResponse(valid=True, entry_id=entry.id, team_id=entry.team_id)
