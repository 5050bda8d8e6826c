"""
Day-of check-in: marks an entry as present and issues its 4-digit day token.

Tokens are unique among the tournament's active entries. Collisions are
retried a bounded number of times instead of serializing check-ins.
"""
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from courtside.errors import (
    AlreadyCheckedInError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    StateViolationError,
)
from courtside.models.entry import TournamentEntry
from courtside.models.team import Team
from courtside.services.permission_resolver import (
    can_administer_tournament,
    is_team_admin,
    require_tournament_admin,
)
from courtside.utils.version_guards import get_match_or_404, get_tournament_or_404

logger = logging.getLogger(__name__)

CHECKIN_TOKEN_MAX_ATTEMPTS = 5
TOKEN_MIN = 1000
TOKEN_MAX = 9999


@dataclass
class CheckinResult:
    entry_id: int
    team_id: int
    day_token: str


def generate_day_token() -> str:
    return str(TOKEN_MIN + secrets.randbelow(TOKEN_MAX - TOKEN_MIN + 1))


def _get_entry_or_404(session: Session, tournament_id: int, entry_id: int) -> TournamentEntry:
    entry = session.get(TournamentEntry, entry_id)
    if not entry or entry.tournament_id != tournament_id:
        raise NotFoundError(f"Entry {entry_id} not found in tournament {tournament_id}", code="entry_not_found")
    return entry


def _token_taken(session: Session, tournament_id: int, token: str, entry_id: int) -> bool:
    return (
        session.exec(
            select(TournamentEntry.id).where(
                TournamentEntry.tournament_id == tournament_id,
                TournamentEntry.day_token == token,
                TournamentEntry.is_active == True,  # noqa: E712
                TournamentEntry.id != entry_id,
            )
        ).first()
        is not None
    )


def check_in_entry(session: Session, tournament_id: int, entry_id: int, actor_id: int) -> CheckinResult:
    """
    Check an entry in and issue its day token.

    The check-in flag is flipped with a conditional update (only while still
    unchecked), so two desks checking in the same entry cannot both succeed.
    """
    get_tournament_or_404(session, tournament_id)
    require_tournament_admin(session, actor_id, tournament_id, "check in entries")
    entry = _get_entry_or_404(session, tournament_id, entry_id)
    if not entry.is_active:
        raise StateViolationError(f"Entry {entry.id} is not active", code="entry_inactive")
    if entry.is_checked_in:
        raise AlreadyCheckedInError(f"Entry {entry.id} is already checked in")

    for attempt in range(1, CHECKIN_TOKEN_MAX_ATTEMPTS + 1):
        token = generate_day_token()
        if _token_taken(session, tournament_id, token, entry.id):
            logger.info("Day token collision in tournament %s (attempt %s)", tournament_id, attempt)
            continue

        try:
            result = session.execute(
                update(TournamentEntry)
                .where(TournamentEntry.id == entry.id, TournamentEntry.is_checked_in == False)  # noqa: E712
                .values(is_checked_in=True, day_token=token, last_checked_in_at=datetime.utcnow())
            )
            if result.rowcount != 1:
                session.rollback()
                raise AlreadyCheckedInError(f"Entry {entry.id} is already checked in")
            session.commit()
        except IntegrityError:
            # Lost a race for the same token on the unique index
            session.rollback()
            logger.info("Day token collision in tournament %s on write (attempt %s)", tournament_id, attempt)
            continue

        session.refresh(entry)
        logger.info("Entry %s checked in to tournament %s", entry.id, tournament_id)
        return CheckinResult(entry_id=entry.id, team_id=entry.team_id, day_token=token)

    raise ConflictError(
        f"Could not issue a unique day token after {CHECKIN_TOKEN_MAX_ATTEMPTS} attempts; retry",
        code="token_unavailable",
    )


def get_entry_token(session: Session, tournament_id: int, entry_id: int, actor_id: int) -> TournamentEntry:
    """Tournament admins, the team's admins and the team manager may read the token."""
    entry = _get_entry_or_404(session, tournament_id, entry_id)
    team = session.get(Team, entry.team_id)
    allowed = (
        can_administer_tournament(session, actor_id, tournament_id)
        or is_team_admin(session, actor_id, entry.team_id)
        or (team is not None and team.manager_user_id is not None and team.manager_user_id == actor_id)
    )
    if not allowed:
        raise AuthorizationError(f"Not permitted to read the day token of entry {entry.id}")
    return entry


def verify_day_token(session: Session, match_id: int, day_token: str) -> TournamentEntry:
    """Resolve a day token to the checked-in entry of the match's tournament holding it."""
    match = get_match_or_404(session, match_id)
    entry = None
    if day_token:
        entry = session.exec(
            select(TournamentEntry).where(
                TournamentEntry.tournament_id == match.tournament_id,
                TournamentEntry.day_token == day_token.strip(),
                TournamentEntry.is_active == True,  # noqa: E712
                TournamentEntry.is_checked_in == True,  # noqa: E712
            )
        ).first()
    if entry is None:
        raise AuthorizationError("Invalid day token", code="invalid_token")
    return entry
