"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic state models (SessionHistoryRecord).
"""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatHistoryDBModel(SQLModel, table=True):
    """
    Persistence model for per-session history pointers.
    Maps 1-to-1 with the 'chat_history' table. The conversation itself lives
    in a blob; this row only knows where.
    """

    __tablename__ = "chat_history"

    session_id: str = Field(primary_key=True, index=True)
    history_url: str
    title: Optional[str] = Field(default=None)
    owner_id: Optional[str] = Field(default=None, index=True)

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
