"""
Database Table Definitions.

This module defines the SQL schema using SQLModel.
We use the 'DBModel' suffix to distinguish these persistence models
from the Pydantic runtime models (SessionState).
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlalchemy.dialects.postgresql import JSONB
from sqlmodel import Field, SQLModel

# JSONB on PostgreSQL, plain JSON everywhere else (SQLite in tests and local dev).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionDBModel(SQLModel, table=True):
    """
    Persistence model for conversation sessions.
    Holds the record produced by `session_state_to_record`, one column per
    top-level key.
    """

    __tablename__ = "sessions"

    session_id: str = Field(primary_key=True, index=True)

    current_route: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONType, nullable=True))
    current_step: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSONType, nullable=True))

    # data, data_by_route, route_history, metadata, pending_transition, history
    collected_data: Dict[str, Any] = Field(sa_column=Column(JSONType, nullable=False))

    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
