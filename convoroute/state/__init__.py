"""
State Layer - Runtime Data Models

Defines the per-conversation session state, the pure utilities that move it
between routes and steps, and its persistence transform.
"""

from convoroute.state.models import (
    CurrentRoute,
    CurrentStep,
    Message,
    PendingTransition,
    RouteHistoryEntry,
    SessionState,
)
from convoroute.state.serialization import (
    record_to_session_state,
    session_state_to_record,
)
from convoroute.state.session import (
    clear_pending_transition,
    complete_route,
    create_session,
    enter_route,
    enter_step,
    merge_collected,
    record_reply,
    set_pending_transition,
)

__all__ = [
    "CurrentRoute",
    "CurrentStep",
    "Message",
    "PendingTransition",
    "RouteHistoryEntry",
    "SessionState",
    "clear_pending_transition",
    "complete_route",
    "create_session",
    "enter_route",
    "enter_step",
    "merge_collected",
    "record_reply",
    "record_to_session_state",
    "session_state_to_record",
]
