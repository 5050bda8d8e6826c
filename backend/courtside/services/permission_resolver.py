"""
Permission Resolver

Answers "may user U act as role R within scope S?" against the flat
UserPermission grant table. Read-only; a missing grant is a normal False,
never an error.

Resolution order (first hit wins):
1. Superuser: role admin with all scope columns null.
2. Exact scope: role matches and every scope column equals the query's
   value (null in the query means null on the grant). A match-only query
   takes the match's tournament first.
3. Role-global: for any scoped query, a grant for the role with all scope
   columns null covers it.
4. Tournament-wide: for match-scoped queries, a grant for the role scoped
   to the match's tournament (team and match null) covers every match in it.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from sqlmodel import Session, select

from courtside.errors import AuthorizationError, NotFoundError, ValidationError
from courtside.models.match import Match
from courtside.models.permission import (
    ROLE_ADMIN,
    ROLE_TEAM_ADMIN,
    ROLE_TOURNAMENT_ADMIN,
    ROLE_TYPES,
    ROLE_UMPIRE,
    UserPermission,
)
from courtside.services.notifications import notify_umpire_granted

logger = logging.getLogger(__name__)

# Roles a tournament admin may hand out inside their own tournament
DELEGABLE_ROLES = (ROLE_UMPIRE, ROLE_TEAM_ADMIN)


@dataclass(frozen=True)
class PermissionScope:
    tournament_id: Optional[int] = None
    team_id: Optional[int] = None
    match_id: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.tournament_id is None and self.team_id is None and self.match_id is None


GLOBAL_SCOPE = PermissionScope()


def _where_grant(stmt, user_id: int, role_type: str, scope: PermissionScope):
    stmt = stmt.where(
        UserPermission.user_id == user_id,
        UserPermission.role_type == role_type,
    )
    for column, value in (
        (UserPermission.tournament_id, scope.tournament_id),
        (UserPermission.team_id, scope.team_id),
        (UserPermission.match_id, scope.match_id),
    ):
        stmt = stmt.where(column.is_(None) if value is None else column == value)
    return stmt


def _grant_exists(session: Session, user_id: int, role_type: str, scope: PermissionScope) -> bool:
    stmt = _where_grant(select(UserPermission.id), user_id, role_type, scope)
    return session.exec(stmt.limit(1)).first() is not None


def has_permission(
    session: Session,
    user_id: Optional[int],
    role_type: str,
    scope: Optional[PermissionScope] = None,
) -> bool:
    if user_id is None:
        return False
    scope = scope or GLOBAL_SCOPE

    if _grant_exists(session, user_id, ROLE_ADMIN, GLOBAL_SCOPE):
        return True

    if scope.match_id is not None and scope.tournament_id is None:
        # Match grants are stored with their tournament
        match = session.get(Match, scope.match_id)
        if match is not None:
            scope = PermissionScope(tournament_id=match.tournament_id, team_id=scope.team_id, match_id=match.id)

    if _grant_exists(session, user_id, role_type, scope):
        return True

    if scope.is_empty:
        return False

    if _grant_exists(session, user_id, role_type, GLOBAL_SCOPE):
        return True

    if scope.match_id is not None and scope.tournament_id is not None:
        if _grant_exists(session, user_id, role_type, PermissionScope(tournament_id=scope.tournament_id)):
            return True

    return False


def is_admin(session: Session, user_id: Optional[int]) -> bool:
    return has_permission(session, user_id, ROLE_ADMIN)


def is_tournament_admin(session: Session, user_id: Optional[int], tournament_id: int) -> bool:
    return has_permission(session, user_id, ROLE_TOURNAMENT_ADMIN, PermissionScope(tournament_id=tournament_id))


def is_team_admin(session: Session, user_id: Optional[int], team_id: int) -> bool:
    return has_permission(session, user_id, ROLE_TEAM_ADMIN, PermissionScope(team_id=team_id))


def is_match_umpire(session: Session, user_id: Optional[int], match: Match) -> bool:
    return has_permission(
        session, user_id, ROLE_UMPIRE, PermissionScope(tournament_id=match.tournament_id, match_id=match.id)
    )


def can_operate_match(session: Session, user_id: Optional[int], match: Match) -> bool:
    """Umpire of the match OR tournament admin OR admin; any one suffices."""
    checks = (
        lambda: is_match_umpire(session, user_id, match),
        lambda: is_tournament_admin(session, user_id, match.tournament_id),
        lambda: is_admin(session, user_id),
    )
    return any(check() for check in checks)


def can_administer_tournament(session: Session, user_id: Optional[int], tournament_id: int) -> bool:
    return is_tournament_admin(session, user_id, tournament_id) or is_admin(session, user_id)


def require_match_operator(session: Session, user_id: Optional[int], match: Match, action: str) -> None:
    if not can_operate_match(session, user_id, match):
        logger.debug("Denied %s on match %s for user %s", action, match.id, user_id)
        raise AuthorizationError(f"Not permitted to {action} match {match.id}")


def require_tournament_admin(session: Session, user_id: Optional[int], tournament_id: int, action: str) -> None:
    if not can_administer_tournament(session, user_id, tournament_id):
        logger.debug("Denied %s on tournament %s for user %s", action, tournament_id, user_id)
        raise AuthorizationError(f"Not permitted to {action} in tournament {tournament_id}")


# ── Grant management ─────────────────────────────────────────────────────


def _normalize_scope(session: Session, scope: PermissionScope) -> PermissionScope:
    """Match-scoped grants always carry their tournament so tournament-scoped queries can see them."""
    if scope.match_id is None:
        return scope
    match = session.get(Match, scope.match_id)
    if not match:
        raise NotFoundError(f"Match {scope.match_id} not found")
    if scope.tournament_id is not None and scope.tournament_id != match.tournament_id:
        raise ValidationError(
            f"Match {match.id} does not belong to tournament {scope.tournament_id}", code="scope_mismatch"
        )
    return PermissionScope(tournament_id=match.tournament_id, team_id=scope.team_id, match_id=match.id)


def _require_grant_authority(session: Session, actor_id: int, role_type: str, scope: PermissionScope) -> None:
    if is_admin(session, actor_id):
        return
    if (
        role_type in DELEGABLE_ROLES
        and scope.tournament_id is not None
        and is_tournament_admin(session, actor_id, scope.tournament_id)
    ):
        return
    raise AuthorizationError(f"Not permitted to manage {role_type} grants in this scope")


def find_grant(session: Session, user_id: int, role_type: str, scope: PermissionScope) -> Optional[UserPermission]:
    stmt = _where_grant(select(UserPermission), user_id, role_type, scope)
    return session.exec(stmt.order_by(UserPermission.id)).first()


def grant_permission(
    session: Session,
    actor_id: int,
    user_id: int,
    role_type: str,
    scope: Optional[PermissionScope] = None,
) -> UserPermission:
    """Insert a grant (or return the identical existing one)."""
    if role_type not in ROLE_TYPES:
        raise ValidationError(f"Unknown role_type: {role_type}", code="invalid_role")
    scope = _normalize_scope(session, scope or GLOBAL_SCOPE)
    _require_grant_authority(session, actor_id, role_type, scope)

    existing = find_grant(session, user_id, role_type, scope)
    if existing:
        return existing

    grant = UserPermission(
        user_id=user_id,
        role_type=role_type,
        tournament_id=scope.tournament_id,
        team_id=scope.team_id,
        match_id=scope.match_id,
    )
    session.add(grant)
    if role_type == ROLE_UMPIRE and scope.match_id is not None:
        notify_umpire_granted(session, user_id, scope.tournament_id, scope.match_id)
    session.commit()
    session.refresh(grant)
    logger.info("User %s granted %s to user %s (scope=%s)", actor_id, role_type, user_id, scope)
    return grant


def revoke_permission(session: Session, actor_id: int, grant_id: int) -> None:
    grant = session.get(UserPermission, grant_id)
    if not grant:
        raise NotFoundError(f"Grant {grant_id} not found")
    scope = PermissionScope(tournament_id=grant.tournament_id, team_id=grant.team_id, match_id=grant.match_id)
    _require_grant_authority(session, actor_id, grant.role_type, scope)
    session.delete(grant)
    session.commit()
    logger.info("User %s revoked grant %s (%s for user %s)", actor_id, grant_id, grant.role_type, grant.user_id)


def list_permissions(session: Session, user_id: int) -> List[UserPermission]:
    return list(
        session.exec(
            select(UserPermission)
            .where(UserPermission.user_id == user_id)
            .order_by(UserPermission.created_at.desc(), UserPermission.id.desc())
        ).all()
    )


def issue_match_umpire_grant(
    session: Session,
    user_id: int,
    match: Match,
    attach_to_tournament_grant: bool = False,
) -> Tuple[UserPermission, bool]:
    """
    Make sure user_id holds an umpire grant scoped to match. Does not commit.

    With attach_to_tournament_grant, an existing tournament-wide umpire grant
    for the user is narrowed onto this match instead of inserting a new row.

    Returns (grant, changed) where changed is False when a grant already existed.
    """
    scope = PermissionScope(tournament_id=match.tournament_id, match_id=match.id)
    existing = find_grant(session, user_id, ROLE_UMPIRE, scope)
    if existing:
        return existing, False

    if attach_to_tournament_grant:
        tournament_grant = find_grant(session, user_id, ROLE_UMPIRE, PermissionScope(tournament_id=match.tournament_id))
        if tournament_grant:
            tournament_grant.match_id = match.id
            session.add(tournament_grant)
            return tournament_grant, True

    grant = UserPermission(
        user_id=user_id,
        role_type=ROLE_UMPIRE,
        tournament_id=match.tournament_id,
        match_id=match.id,
    )
    session.add(grant)
    return grant, True
