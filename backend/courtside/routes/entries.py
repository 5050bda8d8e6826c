from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from courtside.auth import get_current_actor_id
from courtside.database import get_session
from courtside.services.checkin import check_in_entry, get_entry_token

router = APIRouter()


class CheckinResponse(BaseModel):
    entry_id: int
    team_id: int
    day_token: str


class EntryTokenResponse(BaseModel):
    id: int
    team_id: int
    is_checked_in: bool
    day_token: Optional[str] = None
    last_checked_in_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


@router.post("/tournaments/{tournament_id}/entries/{entry_id}/checkin", response_model=CheckinResponse)
def checkin(
    tournament_id: int,
    entry_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    result = check_in_entry(session, tournament_id, entry_id, actor_id)
    return CheckinResponse(entry_id=result.entry_id, team_id=result.team_id, day_token=result.day_token)


@router.get("/tournaments/{tournament_id}/entries/{entry_id}/token", response_model=EntryTokenResponse)
def read_token(
    tournament_id: int,
    entry_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return get_entry_token(session, tournament_id, entry_id, actor_id)
