"""
Match lifecycle endpoints: transitions, assignment, orders.
All mutations take an optional expected_version; a stale one is a 409.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import Session

from courtside.auth import get_current_actor_id
from courtside.database import get_session
from courtside.models.match import Match
from courtside.models.match_score import WINNING_REASON_NORMAL
from courtside.services import match_state
from courtside.services.orders import submit_order

router = APIRouter()


class VersionedAction(BaseModel):
    expected_version: Optional[int] = None


class FinishRequest(VersionedAction):
    winning_reason: str = WINNING_REASON_NORMAL
    winner_side: Optional[str] = None  # "A" | "B", required for RETIRE / DEFAULT


class StatusUpdate(FinishRequest):
    status: str


class AssignRequest(VersionedAction):
    umpire_id: Optional[int] = None
    court_number: Optional[int] = None


class OrderRequest(VersionedAction):
    pair_number: int = Field(ge=1, le=2)
    team_id: int
    player_1_id: int
    player_2_id: Optional[int] = None


class MatchResponse(BaseModel):
    id: int
    tournament_id: int
    parent_match_id: Optional[int] = None
    match_type: str
    round_name: Optional[str] = None
    round_index: Optional[int] = None
    slot_index: Optional[int] = None
    match_number: Optional[int] = None
    status: str
    version: int
    is_confirmed: bool
    court_number: Optional[int] = None
    umpire_id: Optional[int] = None
    next_match_id: Optional[int] = None
    winner_source_match_a: Optional[int] = None
    winner_source_match_b: Optional[int] = None
    started_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ScoreResponse(BaseModel):
    game_count_a: int
    game_count_b: int
    final_score: Optional[str] = None
    winner_id: Optional[int] = None
    ended_at: Optional[datetime] = None
    winning_reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PairResponse(BaseModel):
    pair_number: int
    team_id: Optional[int] = None
    player_1_id: Optional[int] = None
    player_2_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class MatchDetailResponse(BaseModel):
    match: MatchResponse
    score: ScoreResponse
    pairs: List[PairResponse]


class FinishResponse(BaseModel):
    match: MatchResponse
    score: ScoreResponse
    propagation: Dict[str, Any]


def _finish_response(result: match_state.FinishResult) -> FinishResponse:
    return FinishResponse(
        match=MatchResponse.model_validate(result.match),
        score=ScoreResponse.model_validate(result.score),
        propagation=result.propagation.to_dict(),
    )


def _match_or_finish_response(result) -> Dict[str, Any]:
    if isinstance(result, match_state.FinishResult):
        return _finish_response(result).model_dump()
    return {"match": MatchResponse.model_validate(result).model_dump()}


@router.get("/matches/{match_id}", response_model=MatchDetailResponse)
def get_match(match_id: int, session: Session = Depends(get_session)):
    """Match with its score and side pairs (public read)."""
    detail = match_state.get_match(session, match_id)
    return MatchDetailResponse(
        match=MatchResponse.model_validate(detail.match),
        score=ScoreResponse.model_validate(detail.score),
        pairs=[PairResponse.model_validate(p) for p in detail.pairs],
    )


@router.delete("/matches/{match_id}", status_code=204)
def delete_match(
    match_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    match_state.delete_match(session, match_id, actor_id)
    return Response(status_code=204)


@router.post("/matches/{match_id}/start", response_model=MatchResponse)
def start_match(
    match_id: int,
    payload: Optional[VersionedAction] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    payload = payload or VersionedAction()
    return match_state.start_match(session, match_id, actor_id, payload.expected_version)


@router.post("/matches/{match_id}/pause", response_model=MatchResponse)
def pause_match(
    match_id: int,
    payload: Optional[VersionedAction] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    payload = payload or VersionedAction()
    return match_state.pause_match(session, match_id, actor_id, payload.expected_version)


@router.post("/matches/{match_id}/resume", response_model=MatchResponse)
def resume_match(
    match_id: int,
    payload: Optional[VersionedAction] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    payload = payload or VersionedAction()
    return match_state.resume_match(session, match_id, actor_id, payload.expected_version)


@router.post("/matches/{match_id}/finish", response_model=FinishResponse)
def finish_match(
    match_id: int,
    payload: Optional[FinishRequest] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> FinishResponse:
    """Finish on the current aggregate. propagation.ok is false when a downstream step failed;
    the finish itself still stands."""
    payload = payload or FinishRequest()
    result = match_state.finish_match(
        session,
        match_id,
        actor_id,
        expected_version=payload.expected_version,
        winning_reason=payload.winning_reason,
        winner_side=payload.winner_side,
    )
    return _finish_response(result)


@router.post("/matches/{match_id}/confirm", response_model=MatchResponse)
def confirm_match(
    match_id: int,
    payload: Optional[VersionedAction] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    payload = payload or VersionedAction()
    return match_state.confirm_match(session, match_id, actor_id, payload.expected_version)


@router.post("/matches/{match_id}/revert", response_model=MatchResponse)
def revert_match(
    match_id: int,
    payload: Optional[VersionedAction] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    payload = payload or VersionedAction()
    return match_state.revert_match(session, match_id, actor_id, payload.expected_version)


@router.patch("/matches/{match_id}/status")
def update_match_status(
    match_id: int,
    payload: StatusUpdate,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Dict[str, Any]:
    result = match_state.update_match_status(
        session,
        match_id,
        actor_id,
        payload.status,
        expected_version=payload.expected_version,
        winning_reason=payload.winning_reason,
        winner_side=payload.winner_side,
    )
    return _match_or_finish_response(result)


@router.put("/matches/{match_id}/assign", response_model=MatchResponse)
def assign_match(
    match_id: int,
    payload: AssignRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    return match_state.assign_match(
        session,
        match_id,
        actor_id,
        umpire_id=payload.umpire_id,
        court_number=payload.court_number,
        expected_version=payload.expected_version,
    )


@router.delete("/matches/{match_id}/umpire", response_model=MatchResponse)
def remove_umpire(
    match_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
) -> Match:
    return match_state.remove_umpire(session, match_id, actor_id)


@router.post("/matches/{match_id}/order", response_model=PairResponse)
def post_order(
    match_id: int,
    payload: OrderRequest,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return submit_order(
        session,
        match_id,
        actor_id,
        pair_number=payload.pair_number,
        team_id=payload.team_id,
        player_1_id=payload.player_1_id,
        player_2_id=payload.player_2_id,
        expected_version=payload.expected_version,
    )
