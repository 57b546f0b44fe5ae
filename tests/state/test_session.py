"""
Tests for the pure SessionState transitions.
"""

import logging

from convoroute.state.session import (
    clear_pending_transition,
    complete_route,
    create_session,
    enter_route,
    enter_step,
    merge_collected,
    set_pending_transition,
)


class TestCreateSession:
    def test_defaults(self):
        session = create_session("abc", metadata={"channel": "web"})

        assert session.id == "abc"
        assert session.data == {}
        assert session.current_route is None
        assert session.route_history == []
        assert session.metadata["channel"] == "web"
        assert session.metadata["created_at"] == session.metadata["last_updated_at"]

    def test_generates_id(self):
        assert create_session().id != create_session().id


class TestEnterRoute:
    def test_first_entry(self, session):
        entered = enter_route(session, "r1", "Route One")

        assert entered.current_route.id == "r1"
        assert entered.current_route.title == "Route One"
        assert entered.current_step is None
        assert entered.data == {}
        assert [e.route_id for e in entered.route_history] == ["r1"]

    def test_switching_snapshots_and_restores_data(self, session):
        in_a = merge_collected(enter_route(session, "a", "A"), {"name": "Ada", "tags": ["x"]})

        in_b = merge_collected(enter_route(in_a, "b", "B"), {"order": 7})
        back_in_a = enter_route(in_b, "a", "A")

        assert in_b.data == {"order": 7}
        assert back_in_a.data == {"name": "Ada", "tags": ["x"]}
        assert back_in_a.data_by_route["b"] == {"order": 7}
        assert back_in_a.data is not back_in_a.data_by_route["a"]

    def test_switching_closes_previous_history_entry(self, session):
        switched = enter_route(enter_route(session, "a", "A"), "b", "B")

        first, second = switched.route_history
        assert first.route_id == "a"
        assert first.exited_at is not None
        assert first.completed is False
        assert second.route_id == "b"
        assert second.exited_at is None
        assert switched.active_history_entry is second


class TestMergeCollected:
    def test_merge_mirrors_into_snapshot(self, session):
        merged = merge_collected(enter_route(session, "r", "R"), {"a": 1})
        merged = merge_collected(merged, {"a": 2, "b": None})

        assert merged.data == {"a": 2, "b": None}
        assert merged.data_by_route["r"] == merged.data

    def test_without_active_route_patch_is_ignored(self, session, caplog):
        with caplog.at_level(logging.WARNING):
            merged = merge_collected(session, {"a": 1})

        assert merged.data == {}
        assert "no active route" in caplog.text

    def test_patch_values_are_copied(self, session):
        patch = {"items": [1]}
        merged = merge_collected(enter_route(session, "r", "R"), patch)
        patch["items"].append(2)

        assert merged.data["items"] == [1]


class TestCompleteRoute:
    def test_complete_clears_pointers_and_keeps_snapshot(self, session):
        active = enter_step(merge_collected(enter_route(session, "r", "R"), {"a": 1}), "s1")

        completed = complete_route(active)

        assert completed.current_route is None
        assert completed.current_step is None
        assert completed.data == {}
        assert completed.data_by_route["r"] == {"a": 1}
        assert completed.route_history[-1].completed is True
        assert completed.route_history[-1].exited_at is not None

    def test_complete_without_route_is_noop(self, session):
        assert complete_route(session).route_history == []


class TestPendingTransition:
    def test_set_and_clear(self, session):
        pending = set_pending_transition(session, "feedback", "if the user has time")

        assert pending.pending_transition.target_route_id == "feedback"
        assert pending.pending_transition.condition == "if the user has time"
        assert pending.pending_transition.reason == "route_complete"
        assert clear_pending_transition(pending).pending_transition is None


class TestPurity:
    def test_inputs_are_never_mutated(self, session):
        before = session.model_copy(deep=True)

        entered = enter_route(session, "r", "R")
        enter_step(entered, "s")
        merge_collected(entered, {"a": 1})
        complete_route(entered)
        set_pending_transition(entered, "x")

        assert session == before
        assert entered.data == {}
        assert entered.current_step is None
        assert entered.pending_transition is None

    def test_enter_step_updates_timestamp(self, session):
        stepped = enter_step(session, "s", "Ask something")

        assert stepped.current_step.id == "s"
        assert stepped.current_step.description == "Ask something"
        assert stepped.metadata["last_updated_at"] >= session.metadata["last_updated_at"]
