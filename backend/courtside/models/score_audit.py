from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class ScoreAudit(SQLModel, table=True):
    """Before/after snapshot of an administrative score override."""

    __tablename__ = "scoreaudit"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", index=True)
    actor_id: int
    before_game_count_a: int
    before_game_count_b: int
    after_game_count_a: int
    after_game_count_b: int
    # Adjustment added on top of the unfloored ledger balance
    delta_game_count_a: int = Field(default=0)
    delta_game_count_b: int = Field(default=0)
    before_final_score: Optional[str] = Field(default=None)
    after_final_score: Optional[str] = Field(default=None)
    match_version: int  # Match.version after the override
    created_at: datetime = Field(default_factory=datetime.utcnow)
