"""
Persistence transform.

Converts a SessionState to the JSON-compatible record stored by session
repositories and back:

    {
        "id": ...,
        "current_route": {...} | None,
        "current_step": {...} | None,
        "collected_data": {
            "data", "data_by_route", "route_history",
            "metadata", "pending_transition", "history"
        }
    }

Both directions are pure.
"""

from typing import Any, Dict

from .models import SessionState


def session_state_to_record(state: SessionState) -> Dict[str, Any]:
    dumped = state.model_dump(mode="json")
    return {
        "id": dumped["id"],
        "current_route": dumped["current_route"],
        "current_step": dumped["current_step"],
        "collected_data": {
            "data": dumped["data"],
            "data_by_route": dumped["data_by_route"],
            "route_history": dumped["route_history"],
            "metadata": dumped["metadata"],
            "pending_transition": dumped["pending_transition"],
            "history": dumped["history"],
        },
    }


def record_to_session_state(record: Dict[str, Any]) -> SessionState:
    collected = record.get("collected_data") or {}
    return SessionState.model_validate(
        {
            "id": record["id"],
            "current_route": record.get("current_route"),
            "current_step": record.get("current_step"),
            "data": collected.get("data", {}),
            "data_by_route": collected.get("data_by_route", {}),
            "route_history": collected.get("route_history", []),
            "metadata": collected.get("metadata", {}),
            "pending_transition": collected.get("pending_transition"),
            "history": collected.get("history", []),
        }
    )
