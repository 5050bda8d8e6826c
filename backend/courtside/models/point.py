from datetime import datetime
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel

POINT_A = "A_score"
POINT_B = "B_score"
POINT_TYPES = (POINT_A, POINT_B)


class Point(SQLModel, table=True):
    """Append-only scoring ledger row. Only is_undone ever changes, exactly once."""

    __table_args__ = (
        Index("ix_point_match_received", "match_id", "server_received_at"),
        # A client key may appear at most once among live (non-undone) points of a match
        Index(
            "uq_point_live_client_key",
            "match_id",
            "client_key",
            unique=True,
            sqlite_where=text("is_undone = 0"),
            postgresql_where=text("NOT is_undone"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    match_id: int = Field(foreign_key="match.id")
    point_type: str  # "A_score" | "B_score"
    client_key: str  # Client-supplied idempotency key
    is_undone: bool = Field(default=False)
    server_received_at: datetime = Field(default_factory=datetime.utcnow)
    undone_at: Optional[datetime] = Field(default=None)
