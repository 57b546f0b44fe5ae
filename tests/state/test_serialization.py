"""
Tests for the SessionState <-> persistence record transform.
"""

import json

from convoroute.state.models import Message
from convoroute.state.serialization import record_to_session_state, session_state_to_record
from convoroute.state.session import (
    complete_route,
    enter_route,
    enter_step,
    merge_collected,
    set_pending_transition,
)


def _busy_session(session):
    state = merge_collected(enter_route(session, "ticket", "Ticket"), {"email": "a@b.co", "urgent": True})
    state = complete_route(enter_step(state, "ask_issue", "Ask the issue"))
    state = set_pending_transition(state, "feedback", "if the user has a minute")
    state = merge_collected(enter_route(state, "feedback", "Feedback"), {"rating": 4})
    state = enter_step(state, "ask_comment")
    state.history.append(Message(role="user", content="hi"))
    return state


class TestRecordShape:
    def test_record_layout(self, session):
        record = session_state_to_record(_busy_session(session))

        assert record["id"] == "session-1"
        assert record["current_route"]["id"] == "feedback"
        assert record["current_step"]["id"] == "ask_comment"
        assert set(record["collected_data"]) == {
            "data", "data_by_route", "route_history", "metadata", "pending_transition", "history",
        }
        assert isinstance(record["collected_data"]["metadata"]["created_at"], str)

    def test_idle_session_has_null_pointers(self, session):
        record = session_state_to_record(session)

        assert record["current_route"] is None
        assert record["current_step"] is None
        assert record["collected_data"]["pending_transition"] is None


class TestRoundTrip:
    def test_round_trip_preserves_state(self, session):
        state = _busy_session(session)

        restored = record_to_session_state(session_state_to_record(state))

        assert restored == state

    def test_round_trip_through_json_text(self, session):
        state = _busy_session(session)

        text = json.dumps(session_state_to_record(state))
        restored = record_to_session_state(json.loads(text))

        assert restored == state
        assert restored.route_history[0].completed is True
        assert restored.pending_transition.target_route_id == "feedback"
