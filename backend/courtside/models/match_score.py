from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

WINNING_REASON_NORMAL = "NORMAL"
WINNING_REASON_RETIRE = "RETIRE"
WINNING_REASON_DEFAULT = "DEFAULT"
WINNING_REASONS = (WINNING_REASON_NORMAL, WINNING_REASON_RETIRE, WINNING_REASON_DEFAULT)


class MatchScore(SQLModel, table=True):
    __tablename__ = "matchscore"

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id", unique=True)

    # Derived from the point ledger (plus audited overrides); never hand-edited
    game_count_a: int = Field(default=0)
    game_count_b: int = Field(default=0)

    final_score: Optional[str] = Field(default=None)
    winner_id: Optional[int] = Field(default=None, foreign_key="team.id")
    ended_at: Optional[datetime] = Field(default=None)
    winning_reason: Optional[str] = Field(default=None)  # "NORMAL" | "RETIRE" | "DEFAULT"
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
