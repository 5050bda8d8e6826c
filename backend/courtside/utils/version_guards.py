"""
Match Version Guards and Utilities

Provides reusable guards for the optimistic-concurrency rules:
- Lookup-or-NotFound for matches and tournaments
- Expected-version checks (stale client state is a conflict, never an overwrite)
- Compare-and-swap version bumps, re-validated by the store at write time
"""
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import update
from sqlmodel import Session

from courtside.errors import NotFoundError, StateViolationError, VersionConflictError
from courtside.models.match import Match
from courtside.models.tournament import Tournament


def get_match_or_404(session: Session, match_id: int, tournament_id: Optional[int] = None) -> Match:
    """
    Get a match or raise NotFoundError.

    Args:
        session: Database session
        match_id: Match ID
        tournament_id: Optional tournament ID the match must belong to

    Raises:
        NotFoundError: Match not found or belongs to another tournament
    """
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found", code="match_not_found")
    if tournament_id is not None and match.tournament_id != tournament_id:
        raise NotFoundError(f"Match {match_id} does not belong to tournament {tournament_id}", code="match_not_found")
    return match


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found", code="tournament_not_found")
    return tournament


def require_expected_version(match: Match, expected_version: Optional[int]) -> None:
    """Callers that track staleness pass the version they last observed."""
    if expected_version is not None and expected_version != match.version:
        raise VersionConflictError(expected=expected_version, actual=match.version)


def require_status(match: Match, allowed: Iterable[str], action: str) -> None:
    allowed = tuple(allowed)
    if match.status not in allowed:
        raise StateViolationError(
            f"Cannot {action} match {match.id} in status '{match.status}' (allowed: {', '.join(allowed)})"
        )


def advance_version(
    session: Session,
    match: Match,
    expected_version: Optional[int] = None,
    from_statuses: Optional[Iterable[str]] = None,
    **values,
) -> int:
    """
    Compare-and-swap: write values and version+1 only if the stored row still
    carries the version (and status) this request read. Does not commit.

    Returns:
        The new version

    Raises:
        VersionConflictError: expected_version is stale, or another writer
            changed the row between our read and this write
    """
    observed = match.version
    if expected_version is not None and expected_version != observed:
        # Drop anything the caller staged alongside this write
        session.rollback()
        raise VersionConflictError(expected=expected_version, actual=observed)

    stmt = update(Match).where(Match.id == match.id, Match.version == observed)
    if from_statuses is not None:
        stmt = stmt.where(Match.status.in_(tuple(from_statuses)))
    stmt = stmt.values(version=observed + 1, updated_at=datetime.utcnow(), **values)

    result = session.execute(stmt)
    if result.rowcount != 1:
        session.rollback()
        current = session.get(Match, match.id)
        raise VersionConflictError(expected=observed, actual=current.version if current else observed)

    session.refresh(match)
    return observed + 1
