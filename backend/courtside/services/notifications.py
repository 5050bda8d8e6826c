"""Notification side-channel: rows the delivery layer picks up out-of-band."""
import logging
from typing import List, Optional

from sqlmodel import Session, select

from courtside.models.notification import NOTIFICATION_UMPIRE_GRANTED, Notification

logger = logging.getLogger(__name__)


def record_notification(
    session: Session,
    user_id: int,
    kind: str,
    message: str,
    tournament_id: Optional[int] = None,
    match_id: Optional[int] = None,
) -> Notification:
    """Queue a notification in the caller's transaction (no commit)."""
    notification = Notification(
        user_id=user_id,
        kind=kind,
        message=message,
        tournament_id=tournament_id,
        match_id=match_id,
    )
    session.add(notification)
    logger.info("Queued %s notification for user %s (match=%s)", kind, user_id, match_id)
    return notification


def notify_umpire_granted(session: Session, user_id: int, tournament_id: int, match_id: int) -> Notification:
    return record_notification(
        session,
        user_id=user_id,
        kind=NOTIFICATION_UMPIRE_GRANTED,
        message=f"You have been assigned to umpire match #{match_id}",
        tournament_id=tournament_id,
        match_id=match_id,
    )


def list_notifications(session: Session, user_id: int, unread_only: bool = False) -> List[Notification]:
    stmt = select(Notification).where(Notification.user_id == user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read == False)  # noqa: E712
    return list(session.exec(stmt.order_by(Notification.created_at.desc(), Notification.id.desc())).all())
