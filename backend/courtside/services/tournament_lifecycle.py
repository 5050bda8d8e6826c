"""Tournament status: draft -> published -> finished, never backwards."""
import logging

from sqlmodel import Session, select

from courtside.errors import StateViolationError, ValidationError
from courtside.models.entry import TournamentEntry
from courtside.models.tournament import (
    TOURNAMENT_DRAFT,
    TOURNAMENT_FINISHED,
    TOURNAMENT_PUBLISHED,
    TOURNAMENT_STATUS_ORDER,
    Tournament,
)
from courtside.services.permission_resolver import require_tournament_admin
from courtside.utils.version_guards import get_tournament_or_404

logger = logging.getLogger(__name__)


def _advance_status(session: Session, tournament: Tournament, target: str) -> Tournament:
    current_rank = TOURNAMENT_STATUS_ORDER.index(tournament.status)
    target_rank = TOURNAMENT_STATUS_ORDER.index(target)
    if target_rank != current_rank + 1:
        raise StateViolationError(
            f"Tournament {tournament.id} cannot move from {tournament.status} to {target}"
        )
    tournament.status = target
    session.add(tournament)
    return tournament


def publish_tournament(session: Session, tournament_id: int, actor_id: int) -> Tournament:
    tournament = get_tournament_or_404(session, tournament_id)
    require_tournament_admin(session, actor_id, tournament.id, "publish")
    if tournament.status != TOURNAMENT_DRAFT:
        raise StateViolationError(f"Tournament {tournament.id} is already {tournament.status}")

    active_entry = session.exec(
        select(TournamentEntry.id).where(
            TournamentEntry.tournament_id == tournament.id,
            TournamentEntry.is_active == True,  # noqa: E712
        )
    ).first()
    if active_entry is None:
        raise ValidationError(f"Tournament {tournament.id} has no active entries", code="no_active_entries")

    _advance_status(session, tournament, TOURNAMENT_PUBLISHED)
    tournament.is_public = True
    session.commit()
    session.refresh(tournament)
    logger.info("User %s published tournament %s", actor_id, tournament.id)
    return tournament


def finish_tournament(session: Session, tournament_id: int, actor_id: int) -> Tournament:
    tournament = get_tournament_or_404(session, tournament_id)
    require_tournament_admin(session, actor_id, tournament.id, "finish")
    _advance_status(session, tournament, TOURNAMENT_FINISHED)
    session.commit()
    session.refresh(tournament)
    logger.info("User %s finished tournament %s", actor_id, tournament.id)
    return tournament
