import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from ..state.models import SessionState
from ..state.serialization import record_to_session_state, session_state_to_record
from ..state.session import create_session
from ..infrastructure.database.tables import SessionDBModel
from ..infrastructure.database.connection import engine as default_engine

logger = logging.getLogger(__name__)


class SessionRepository(ABC):
    """
    Defines how the application persists sessions.
    This allows us to change the store (Memory -> SQL -> API) later
    without changing the Agent or RouteEngine code.

    A missing session is reported as None, never as an exception, so the
    caller decides whether to start a fresh one.
    """

    @abstractmethod
    def create(self) -> SessionState:
        """Creates and stores a new empty session with a unique ID."""
        pass

    @abstractmethod
    def load(self, session_id: str) -> Optional[SessionState]:
        """Retrieves a session by ID."""
        pass

    @abstractmethod
    def save(self, session: SessionState):
        """Persists the session state, inserting it if it is new."""
        pass

    @abstractmethod
    def delete(self, session_id: str) -> bool:
        """Deletes a session. Returns True if found and deleted."""
        pass


class InMemorySessionRepository(SessionRepository):
    """
    Keeps persistence records in a dictionary for testing/dev purposes.
    Sessions are stored as records, so callers never share mutable state
    with the store.
    """

    def __init__(self):
        self._store: Dict[str, Dict[str, Any]] = {}

    def create(self) -> SessionState:
        session = create_session()
        self.save(session)
        return session

    def load(self, session_id: str) -> Optional[SessionState]:
        record = self._store.get(session_id)
        if record is None:
            return None
        return record_to_session_state(copy.deepcopy(record))

    def save(self, session: SessionState):
        self._store[session.id] = session_state_to_record(session)

    def delete(self, session_id: str) -> bool:
        return self._store.pop(session_id, None) is not None


class SQLSessionRepository(SessionRepository):
    """
    SQL storage for session state (JSONB on PostgreSQL, JSON on SQLite).
    """

    def __init__(self, db_engine: Optional[Engine] = None):
        self.engine = db_engine or default_engine

    def create(self) -> SessionState:
        session = create_session()
        self.save(session)
        return session

    def load(self, session_id: str) -> Optional[SessionState]:
        with Session(self.engine) as db:
            result = db.get(SessionDBModel, session_id)
            if not result:
                return None

            return record_to_session_state(
                {
                    "id": result.session_id,
                    "current_route": result.current_route,
                    "current_step": result.current_step,
                    "collected_data": result.collected_data,
                }
            )

    def save(self, session: SessionState):
        record = session_state_to_record(session)

        with Session(self.engine) as db:
            statement = select(SessionDBModel).where(SessionDBModel.session_id == session.id)
            result = db.exec(statement).first()

            if result is None:
                result = SessionDBModel(session_id=session.id, collected_data=record["collected_data"])
                logger.debug(f"Inserting session {session.id}")

            result.current_route = record["current_route"]
            result.current_step = record["current_step"]
            result.collected_data = record["collected_data"]
            result.updated_at = datetime.now(timezone.utc)
            db.add(result)
            db.commit()

    def delete(self, session_id: str) -> bool:
        with Session(self.engine) as db:
            result = db.get(SessionDBModel, session_id)

            if result:
                db.delete(result)
                db.commit()
                return True
            return False
