from datetime import datetime
from typing import Optional

from sqlalchemy import Index, UniqueConstraint as SAUniqueConstraint, text
from sqlmodel import Field, SQLModel


class TournamentEntry(SQLModel, table=True):
    __tablename__ = "tournamententry"
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "team_id", name="uq_entry_tournament_team"),
        # Day tokens are unique per tournament among active entries
        Index(
            "uq_entry_active_day_token",
            "tournament_id",
            "day_token",
            unique=True,
            sqlite_where=text("is_active = 1 AND day_token IS NOT NULL"),
            postgresql_where=text("is_active AND day_token IS NOT NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    team_id: int = Field(foreign_key="team.id", index=True)
    is_active: bool = Field(default=True)
    is_checked_in: bool = Field(default=False)
    day_token: Optional[str] = Field(default=None)  # 4-digit check-in code
    last_checked_in_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
