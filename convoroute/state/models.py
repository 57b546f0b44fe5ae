"""
State Layer - Runtime Data Models

This module defines the runtime state that tracks one conversation's journey
through routes and steps: the pointers into the route/step graph, the data
collected in the active route, a per-route snapshot of collected data, and
an append-only route history.
"""

from datetime import datetime, timezone
from typing import List, Dict, Optional, Any, Literal
from pydantic import BaseModel, Field, TypeAdapter, field_validator

TIMESTAMP_KEYS = ("created_at", "last_updated_at")
_datetime_adapter = TypeAdapter(datetime)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CurrentRoute(BaseModel):
    id: str
    title: str
    entered_at: datetime = Field(default_factory=utcnow)


class CurrentStep(BaseModel):
    id: str
    description: Optional[str] = None
    entered_at: datetime = Field(default_factory=utcnow)
    # Assistant replies given while this step was current.
    replies: int = 0


class RouteHistoryEntry(BaseModel):
    """
    One visit to a route. Entries are appended on entry and updated in place
    on exit or completion, never removed.
    """
    route_id: str
    entered_at: datetime = Field(default_factory=utcnow)
    exited_at: Optional[datetime] = None
    completed: bool = False


class PendingTransition(BaseModel):
    """
    A route switch scheduled for the start of the next turn.
    """
    target_route_id: str
    condition: Optional[str] = None
    reason: Literal["route_complete", "manual"] = "route_complete"


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class SessionState(BaseModel):
    """
    The global state for a single conversation.

    `data` holds exactly the fields of `current_route` (empty when no route
    is active) and is mirrored into `data_by_route[current_route.id]`.
    """
    id: str
    data: Dict[str, Any] = Field(default_factory=dict)
    data_by_route: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    current_route: Optional[CurrentRoute] = None
    current_step: Optional[CurrentStep] = None
    route_history: List[RouteHistoryEntry] = Field(default_factory=list)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    pending_transition: Optional[PendingTransition] = None
    history: List[Message] = Field(default_factory=list)

    @field_validator("metadata", mode="before")
    @classmethod
    def _parse_timestamps(cls, value: Any) -> Any:
        # Timestamps come back from JSON stores as ISO strings.
        if not isinstance(value, dict):
            return value
        parsed = dict(value)
        for key in TIMESTAMP_KEYS:
            if isinstance(parsed.get(key), str):
                parsed[key] = _datetime_adapter.validate_python(parsed[key])
        return parsed

    @property
    def active_history_entry(self) -> Optional[RouteHistoryEntry]:
        if not self.current_route:
            return None
        for entry in reversed(self.route_history):
            if entry.route_id == self.current_route.id and entry.exited_at is None:
                return entry
        return None
