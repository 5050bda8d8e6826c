"""Notification rows for out-of-band delivery (grant notices and the like)."""

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

NOTIFICATION_UMPIRE_GRANTED = "umpire_granted"


class Notification(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    kind: str  # umpire_granted
    tournament_id: Optional[int] = Field(default=None, foreign_key="tournament.id")
    match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    message: str
    is_read: bool = Field(default=False)
    created_at: datetime = Field(default_factory=datetime.utcnow)
