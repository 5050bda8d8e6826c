from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, ConfigDict
from sqlmodel import Session

from courtside.auth import get_current_actor_id
from courtside.database import get_session
from courtside.errors import AuthorizationError
from courtside.services import permission_resolver
from courtside.services.notifications import list_notifications
from courtside.services.permission_resolver import PermissionScope

router = APIRouter()


class GrantCreate(BaseModel):
    user_id: int
    role_type: str
    tournament_id: Optional[int] = None
    team_id: Optional[int] = None
    match_id: Optional[int] = None


class GrantResponse(BaseModel):
    id: int
    user_id: int
    role_type: str
    tournament_id: Optional[int] = None
    team_id: Optional[int] = None
    match_id: Optional[int] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PermissionCheckResponse(BaseModel):
    user_id: int
    role_type: str
    allowed: bool


class NotificationResponse(BaseModel):
    id: int
    kind: str
    tournament_id: Optional[int] = None
    match_id: Optional[int] = None
    message: str
    is_read: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


@router.post("/permissions", response_model=GrantResponse, status_code=201)
def grant(
    payload: GrantCreate,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    scope = PermissionScope(
        tournament_id=payload.tournament_id, team_id=payload.team_id, match_id=payload.match_id
    )
    return permission_resolver.grant_permission(session, actor_id, payload.user_id, payload.role_type, scope)


@router.delete("/permissions/{grant_id}", status_code=204)
def revoke(
    grant_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    permission_resolver.revoke_permission(session, actor_id, grant_id)
    return Response(status_code=204)


@router.get("/users/{user_id}/permissions", response_model=List[GrantResponse])
def list_user_permissions(
    user_id: int,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    if actor_id != user_id and not permission_resolver.is_admin(session, actor_id):
        raise AuthorizationError("Only admins can list another user's grants")
    return permission_resolver.list_permissions(session, user_id)


@router.get("/permissions/check", response_model=PermissionCheckResponse)
def check_permission(
    role_type: str,
    tournament_id: Optional[int] = None,
    team_id: Optional[int] = None,
    match_id: Optional[int] = None,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    """Does the caller hold role_type in the given scope?"""
    scope = PermissionScope(tournament_id=tournament_id, team_id=team_id, match_id=match_id)
    allowed = permission_resolver.has_permission(session, actor_id, role_type, scope)
    return PermissionCheckResponse(user_id=actor_id, role_type=role_type, allowed=allowed)


@router.get("/me/notifications", response_model=List[NotificationResponse])
def my_notifications(
    unread_only: bool = False,
    session: Session = Depends(get_session),
    actor_id: int = Depends(get_current_actor_id),
):
    return list_notifications(session, actor_id, unread_only=unread_only)
