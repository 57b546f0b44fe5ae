"""
Database Connection Manager.

This module handles the low-level details of connecting to the session
store (PostgreSQL in production, SQLite for local development).
It exposes the SQLModel engine which will be used by the Repositories.
"""

from typing import Optional

from sqlalchemy.engine import Engine
from sqlmodel import create_engine, SQLModel
from ...config import settings


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # SQLite connections are shared across FastAPI worker threads.
        connect_args["check_same_thread"] = False
    # echo=False to avoid leaking conversation data in logs
    return create_engine(database_url, echo=False, connect_args=connect_args)


engine = build_engine(settings.DATABASE_URL)


def init_db(db_engine: Optional[Engine] = None):
    """
    Idempotent initialization.
    Creates tables if they do not exist.
    """
    SQLModel.metadata.create_all(db_engine or engine)
