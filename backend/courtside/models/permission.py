from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

ROLE_ADMIN = "admin"
ROLE_TOURNAMENT_ADMIN = "tournament_admin"
ROLE_TEAM_ADMIN = "team_admin"
ROLE_UMPIRE = "umpire"
ROLE_TYPES = (ROLE_ADMIN, ROLE_TOURNAMENT_ADMIN, ROLE_TEAM_ADMIN, ROLE_UMPIRE)


class UserPermission(SQLModel, table=True):
    """A role grant. Null scope columns widen it; admin with all-null scope is a superuser.

    Grants are additive: removal is a delete, never a flag.
    """

    __tablename__ = "userpermission"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)
    role_type: str  # "admin" | "tournament_admin" | "team_admin" | "umpire"
    tournament_id: Optional[int] = Field(default=None, foreign_key="tournament.id", index=True)
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    match_id: Optional[int] = Field(default=None, foreign_key="match.id")
    created_at: datetime = Field(default_factory=datetime.utcnow)
