from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

MATCH_PENDING = "pending"
MATCH_IN_PROGRESS = "inprogress"
MATCH_PAUSED = "paused"
MATCH_FINISHED = "finished"
MATCH_STATUSES = (MATCH_PENDING, MATCH_IN_PROGRESS, MATCH_PAUSED, MATCH_FINISHED)

MATCH_TYPE_TEAM = "team_match"
MATCH_TYPE_INDIVIDUAL = "individual_match"


class Match(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)

    # Team matches group individual matches under a parent (majority decides)
    parent_match_id: Optional[int] = Field(default=None, foreign_key="match.id", index=True)
    match_type: str = Field(default=MATCH_TYPE_INDIVIDUAL)  # "team_match" | "individual_match"

    round_name: Optional[str] = Field(default=None)
    round_index: Optional[int] = Field(default=None)
    slot_index: Optional[int] = Field(default=None)  # Position within the round (parity picks downstream slot)
    match_number: Optional[int] = Field(default=None)

    status: str = Field(default=MATCH_PENDING)  # "pending" | "inprogress" | "paused" | "finished"
    version: int = Field(default=1)  # Optimistic-concurrency token; +1 on every mutation
    is_confirmed: bool = Field(default=False)

    court_number: Optional[int] = Field(default=None)
    umpire_id: Optional[int] = Field(default=None, index=True)

    # Bracket wiring: this match's winner feeds next_match_id; on the downstream match,
    # winner_source_match_a/b name the upstream match feeding slot 1/slot 2
    next_match_id: Optional[int] = Field(default=None, foreign_key="match.id", index=True)
    winner_source_match_a: Optional[int] = Field(default=None, foreign_key="match.id")
    winner_source_match_b: Optional[int] = Field(default=None, foreign_key="match.id")

    started_at: Optional[datetime] = Field(default=None)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow, sa_column_kwargs={"onupdate": datetime.utcnow})
