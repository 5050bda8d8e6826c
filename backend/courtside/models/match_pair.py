from datetime import datetime
from typing import Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, SQLModel


class MatchPair(SQLModel, table=True):
    """Which team occupies which side (pair_number 1 = A, 2 = B) of a match."""

    __tablename__ = "matchpair"
    __table_args__ = (SAUniqueConstraint("match_id", "pair_number", name="uq_matchpair_match_slot"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    pair_number: int  # 1 | 2
    team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    player_1_id: Optional[int] = Field(default=None)
    player_2_id: Optional[int] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
