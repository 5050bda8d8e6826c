from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

TOURNAMENT_DRAFT = "draft"
TOURNAMENT_PUBLISHED = "published"
TOURNAMENT_FINISHED = "finished"

# Forward-only lifecycle order
TOURNAMENT_STATUS_ORDER = (TOURNAMENT_DRAFT, TOURNAMENT_PUBLISHED, TOURNAMENT_FINISHED)

UMPIRE_MODE_LOSER = "LOSER"
UMPIRE_MODE_ASSIGNED = "ASSIGNED"
UMPIRE_MODE_FREE = "FREE"
UMPIRE_MODES = (UMPIRE_MODE_LOSER, UMPIRE_MODE_ASSIGNED, UMPIRE_MODE_FREE)


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    status: str = Field(default=TOURNAMENT_DRAFT)  # "draft" | "published" | "finished"
    umpire_mode: str = Field(default=UMPIRE_MODE_ASSIGNED)  # "LOSER" | "ASSIGNED" | "FREE"
    is_public: bool = Field(default=False)
    created_by_user_id: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
