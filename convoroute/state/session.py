"""
State Layer - Session Utilities

Pure transitions over SessionState. Every function returns a new state and
leaves its input untouched, so the caller always keeps the last committed
state if a turn fails half-way.
"""

import copy
import logging
import uuid
from typing import Any, Dict, Mapping, Optional

from .models import (
    CurrentRoute,
    CurrentStep,
    PendingTransition,
    RouteHistoryEntry,
    SessionState,
    utcnow,
)

logger = logging.getLogger(__name__)


def _touch(session: SessionState) -> SessionState:
    session.metadata["last_updated_at"] = utcnow()
    return session


def _working_copy(session: SessionState) -> SessionState:
    return session.model_copy(deep=True)


def create_session(
    session_id: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None
) -> SessionState:
    now = utcnow()
    session_metadata = dict(metadata or {})
    session_metadata.setdefault("created_at", now)
    session_metadata["last_updated_at"] = now
    return SessionState(id=session_id or str(uuid.uuid4()), metadata=session_metadata)


def enter_route(session: SessionState, route_id: str, route_title: str) -> SessionState:
    """
    Leaves the active route (if any) and enters `route_id`.

    The outgoing route's data is snapshotted into `data_by_route` and its
    history entry is closed; the incoming route resumes from its own
    snapshot, or from empty data on a first visit.
    """
    new_session = _working_copy(session)
    now = utcnow()

    if new_session.current_route:
        outgoing_id = new_session.current_route.id
        new_session.data_by_route[outgoing_id] = copy.deepcopy(new_session.data)
        entry = new_session.active_history_entry
        if entry:
            entry.exited_at = now

    new_session.data = copy.deepcopy(new_session.data_by_route.get(route_id, {}))
    new_session.data_by_route[route_id] = copy.deepcopy(new_session.data)
    new_session.current_route = CurrentRoute(id=route_id, title=route_title, entered_at=now)
    new_session.current_step = None
    new_session.route_history.append(RouteHistoryEntry(route_id=route_id, entered_at=now))

    logger.debug(f"Session {new_session.id} entered route {route_id}")
    return _touch(new_session)


def enter_step(
    session: SessionState, step_id: str, description: Optional[str] = None
) -> SessionState:
    new_session = _working_copy(session)
    new_session.current_step = CurrentStep(id=step_id, description=description)
    logger.debug(f"Session {new_session.id} entered step {step_id}")
    return _touch(new_session)


def record_reply(session: SessionState) -> SessionState:
    """Counts one assistant reply against the current step."""
    new_session = _working_copy(session)
    if new_session.current_step is not None:
        new_session.current_step.replies += 1
    return new_session


def merge_collected(session: SessionState, patch: Optional[Mapping[str, Any]]) -> SessionState:
    """
    Shallow-merges `patch` into `data` (later keys win) and mirrors the
    result into `data_by_route` for the active route.
    """
    new_session = _working_copy(session)
    if not patch:
        return new_session

    if not new_session.current_route:
        logger.warning(
            f"Session {new_session.id} has no active route, ignoring data patch {sorted(patch)}"
        )
        return new_session

    new_session.data.update(copy.deepcopy(dict(patch)))
    new_session.data_by_route[new_session.current_route.id] = copy.deepcopy(new_session.data)
    return _touch(new_session)


def complete_route(session: SessionState) -> SessionState:
    """
    Marks the active route completed and exited, snapshots its data and
    clears the route/step pointers.
    """
    new_session = _working_copy(session)
    if not new_session.current_route:
        return new_session

    route_id = new_session.current_route.id
    entry = new_session.active_history_entry
    if entry:
        entry.completed = True
        entry.exited_at = utcnow()

    new_session.data_by_route[route_id] = copy.deepcopy(new_session.data)
    new_session.data = {}
    new_session.current_route = None
    new_session.current_step = None

    logger.info(f"Session {new_session.id} completed route {route_id}")
    return _touch(new_session)


def set_pending_transition(
    session: SessionState,
    target_route_id: str,
    condition: Optional[str] = None,
    reason: str = "route_complete",
) -> SessionState:
    new_session = _working_copy(session)
    new_session.pending_transition = PendingTransition(
        target_route_id=target_route_id, condition=condition, reason=reason
    )
    return _touch(new_session)


def clear_pending_transition(session: SessionState) -> SessionState:
    new_session = _working_copy(session)
    new_session.pending_transition = None
    return _touch(new_session)
