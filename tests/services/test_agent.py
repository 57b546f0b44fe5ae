"""
Tests for the Agent turn pipeline.

The LLM is a scripted FakeLLMProvider; each test lists exactly the
structured outputs the turn is expected to request.
"""

import logging

import pytest

from convoroute.data.example_routes import build_feedback_route, build_support_ticket_route
from convoroute.domain.route import Route
from convoroute.exceptions import SessionNotFoundError, ToolExecutionError
from convoroute.execution.responder import FALLBACK_REPLY
from convoroute.repositories.session import InMemorySessionRepository
from convoroute.schemas.decisions import AgentDecision, FieldValue, RouteSelection, ToolCallRequest
from convoroute.services.agent import Agent
from convoroute.services.route_router import LLMRouteRouter, SingleRouteRouter
from convoroute.state.models import Message
from convoroute.state.session import enter_route, enter_step, merge_collected
from convoroute.tools.models import ToolDefinition, ToolResult


def decision(reply, tool_calls=None, step=None, **collected):
    return AgentDecision(
        reply_to_user=reply,
        collected=[FieldValue(field=name, value=value) for name, value in collected.items()],
        tool_calls=tool_calls or [],
        step=step,
    )


def user(text):
    return [Message(role="user", content=text)]


@pytest.fixture
def ticket_agent(fake_llm):
    return Agent(
        name="Support Assistant",
        description="a customer support assistant",
        llm_provider=fake_llm,
        routes=[build_support_ticket_route()],
        session_repository=InMemorySessionRepository(),
    )


@pytest.fixture
def two_route_agent(fake_llm):
    return Agent(
        name="Support Assistant",
        llm_provider=fake_llm,
        routes=[build_support_ticket_route(), build_feedback_route()],
    )


def at_issue_step(agent, session):
    route = agent.routes.get_route("Open Support Ticket")
    state = merge_collected(enter_route(session, route.id, route.title), {"email": "a@b.co", "product": "Printer"})
    return enter_step(state, "ask_issue")


class TestConstruction:
    def test_router_defaults(self, fake_llm):
        single = Agent(name="A", llm_provider=fake_llm, routes=[build_feedback_route()])
        multi = Agent(
            name="A", llm_provider=fake_llm, routes=[build_feedback_route(), build_support_ticket_route()]
        )

        assert isinstance(single.router, SingleRouteRouter)
        assert isinstance(multi.router, LLMRouteRouter)

    def test_routes_are_frozen_and_guidelines_get_ids(self, fake_llm):
        agent = Agent(
            name="A",
            llm_provider=fake_llm,
            routes=[build_feedback_route()],
            guidelines=[{"action": "Be concise"}],
        )
        added = agent.create_guideline({"action": "Use the customer's name"})

        assert agent.routes.get_route("Collect Feedback").frozen is True
        assert [g.id for g in agent.guidelines] == ["guideline_agent_0", "guideline_agent_1"]
        assert added.id == "guideline_agent_1"


class TestRespond:
    @pytest.mark.asyncio
    async def test_cold_start_extracts_data_and_advances(self, ticket_agent, fake_llm, session):
        fake_llm.responses = [decision("Thanks! Which product?", email="a@b.co")]

        response = await ticket_agent.respond(user("Hi, my email is a@b.co"), session)

        assert response.message == "Thanks! Which product?"
        assert response.session.current_route.title == "Open Support Ticket"
        assert response.session.current_step.id == "ask_product"
        assert response.session.data == {"email": "a@b.co"}
        assert "CURRENT STEP (ask_email)" in fake_llm.last_system_prompt
        assert session.current_route is None

    @pytest.mark.asyncio
    async def test_undeclared_fields_are_dropped(self, ticket_agent, fake_llm, session):
        fake_llm.responses = [decision("Noted.", email="a@b.co", favourite_colour="blue")]

        response = await ticket_agent.respond(user("a@b.co, I like blue"), session)

        assert response.session.data == {"email": "a@b.co"}

    @pytest.mark.asyncio
    async def test_null_values_are_not_collected(self, ticket_agent, fake_llm, session):
        fake_llm.responses = [decision("What is your email?", email=None)]

        response = await ticket_agent.respond(user("hello"), session)

        assert response.session.data == {}
        assert response.session.current_step.id == "ask_email"

    @pytest.mark.asyncio
    async def test_route_completes_after_last_field(self, ticket_agent, fake_llm, session):
        fake_llm.responses = [decision("Ticket opened.", issue="It will not print")]

        response = await ticket_agent.respond(user("It will not print"), at_issue_step(ticket_agent, session))

        assert response.is_route_complete is True
        assert response.session.current_route is None
        assert response.session.pending_transition.target_route_id == "Collect Feedback"
        assert response.session.route_history[-1].completed is True

    @pytest.mark.asyncio
    async def test_pending_transition_enters_next_route(self, two_route_agent, fake_llm, session):
        fake_llm.responses = [
            decision("Ticket opened.", issue="It will not print"),
            decision("How would you rate us?"),
        ]
        first = await two_route_agent.respond(user("It will not print"), at_issue_step(two_route_agent, session))

        second = await two_route_agent.respond(user("ok"), first.session)

        assert second.session.pending_transition is None
        assert second.session.current_route.title == "Collect Feedback"
        assert second.session.current_step.id == "ask_rating"
        assert len(fake_llm.calls) == 2

    @pytest.mark.asyncio
    async def test_route_already_complete_uses_completion_prompt(self, fake_llm, session):
        route = Route(
            title="Prefilled",
            required_fields=["a"],
            initial_data={"a": 1},
            initial_step={"id": "only", "collect": ["a"]},
            completion_prompt="Say goodbye warmly.",
        )
        agent = Agent(name="A", llm_provider=fake_llm, routes=[route])
        fake_llm.responses = [AgentDecision(reply_to_user="Goodbye!")]

        response = await agent.respond(user("hi"), session)

        assert response.is_route_complete is True
        assert response.message == "Goodbye!"
        assert "has just been completed" in fake_llm.last_system_prompt
        assert "Say goodbye warmly." in fake_llm.last_system_prompt

    @pytest.mark.asyncio
    async def test_no_eligible_route_replies_without_route(self, fake_llm, session):
        route = Route(title="Gated", when=lambda ctx: False, initial_step={"id": "a", "collect": ["x"]})
        agent = Agent(name="A", llm_provider=fake_llm, routes=[route], guidelines=[{"action": "Be kind"}])
        fake_llm.responses = [AgentDecision(reply_to_user="How can I help?")]

        response = await agent.respond(user("hello"), session)

        assert response.message == "How can I help?"
        assert response.session.current_route is None
        assert "Be kind" in fake_llm.last_system_prompt
        assert "CURRENT CONVERSATION FLOW" not in fake_llm.last_system_prompt

    @pytest.mark.asyncio
    async def test_llm_failure_falls_back_and_holds(self, ticket_agent, fake_llm, session):
        fake_llm.responses = [RuntimeError("provider down")]

        response = await ticket_agent.respond(user("hello"), session)

        assert response.message == FALLBACK_REPLY
        assert response.session.current_step.id == "ask_email"

    @pytest.mark.asyncio
    async def test_llm_router_selects_route(self, two_route_agent, fake_llm, session):
        feedback = two_route_agent.routes.get_route("Collect Feedback")
        fake_llm.responses = [
            RouteSelection(route_id=feedback.id, reasoning="user wants to leave feedback"),
            decision("Thanks for the 5!", rating=5),
        ]

        response = await two_route_agent.respond(user("I want to rate you 5 stars"), session)

        assert response.is_route_complete is True
        assert response.session.data_by_route[feedback.id] == {"rating": 5}
        assert "AVAILABLE FLOWS" in fake_llm.calls[0]["messages"][0]["content"]
        assert response.message == "Thanks for the 5!"


class TestRequestedTools:
    @pytest.mark.asyncio
    async def test_tool_patch_and_context_update(self, fake_llm, session):
        lookup = ToolDefinition(
            id="lookup_customer",
            handler=lambda ctx: ToolResult(
                data_update={"email": f"{ctx.args['user']}@example.test"},
                context_update={"customer_known": True},
            ),
        )
        agent = Agent(
            name="A", llm_provider=fake_llm, routes=[build_support_ticket_route()], tools=[lookup]
        )
        fake_llm.responses = [
            decision(
                "Found you. Which product?",
                tool_calls=[ToolCallRequest(tool_id="lookup_customer", arguments=[FieldValue(field="user", value="ada")])],
            )
        ]

        response = await agent.respond(user("I'm ada"), session)

        assert response.session.data == {"email": "ada@example.test"}
        assert response.session.current_step.id == "ask_product"
        assert agent.context == {"customer_known": True}
        assert response.tool_calls[0].tool_id == "lookup_customer"
        assert "lookup_customer" in fake_llm.last_system_prompt

    @pytest.mark.asyncio
    async def test_failing_tool_carries_session(self, fake_llm, session):
        def broken(ctx):
            raise ValueError("crm offline")

        agent = Agent(
            name="A",
            llm_provider=fake_llm,
            routes=[build_support_ticket_route()],
            tools=[ToolDefinition(id="lookup_customer", handler=broken)],
        )
        fake_llm.responses = [decision("One moment.", tool_calls=[ToolCallRequest(tool_id="lookup_customer")])]

        with pytest.raises(ToolExecutionError) as info:
            await agent.respond(user("I'm ada"), session)

        assert info.value.session.current_step.id == "ask_email"

    @pytest.mark.asyncio
    async def test_unsuccessful_tool_result_is_skipped(self, fake_llm, session):
        agent = Agent(
            name="A",
            llm_provider=fake_llm,
            routes=[build_support_ticket_route()],
            tools=[ToolDefinition(id="lookup_customer", handler=lambda ctx: ToolResult(success=False, error="no match"))],
        )
        fake_llm.responses = [decision("What is your email?", tool_calls=[ToolCallRequest(tool_id="lookup_customer")])]

        response = await agent.respond(user("hi"), session)

        assert response.session.data == {}
        assert response.session.current_step.id == "ask_email"


class TestProcessMessage:
    @pytest.mark.asyncio
    async def test_transcript_is_persisted(self, ticket_agent, fake_llm):
        session = ticket_agent.create_session()
        fake_llm.responses = [decision("Which product?", email="a@b.co")]

        response = await ticket_agent.process_message(session.id, "a@b.co")
        stored = ticket_agent.get_session(session.id)

        assert response.message == "Which product?"
        assert [(m.role, m.content) for m in stored.history] == [
            ("user", "a@b.co"),
            ("assistant", "Which product?"),
        ]
        assert stored.current_step.id == "ask_product"

    @pytest.mark.asyncio
    async def test_unknown_session(self, ticket_agent):
        with pytest.raises(SessionNotFoundError):
            await ticket_agent.process_message("missing", "hello")

    def test_delete_session(self, ticket_agent):
        session = ticket_agent.create_session()

        assert ticket_agent.delete_session(session.id) is True
        assert ticket_agent.get_session(session.id) is None


class TestRouteSwitching:
    @pytest.fixture
    def at_product_step(self, two_route_agent, session):
        route = two_route_agent.routes.get_route("Open Support Ticket")
        state = merge_collected(enter_route(session, route.id, route.title), {"email": "a@b.co"})
        return enter_step(state, "ask_product")

    @pytest.mark.asyncio
    async def test_switch_and_resume_restores_route_data(self, two_route_agent, fake_llm, at_product_step):
        ticket = two_route_agent.routes.get_route("Open Support Ticket")
        feedback = two_route_agent.routes.get_route("Collect Feedback")
        fake_llm.responses = [
            AgentDecision(reply_to_user="Sure, how would you rate us?", route=feedback.id),
            AgentDecision(reply_to_user="Back to your ticket. Which product?", route=ticket.id),
        ]

        switched = await two_route_agent.respond(user("Actually I just want to leave a rating"), at_product_step)
        resumed = await two_route_agent.respond(user("Never mind, the ticket first"), switched.session)

        assert switched.session.current_route.id == feedback.id
        assert switched.session.current_step.id == "ask_rating"
        assert switched.session.data == {}
        assert switched.session.data_by_route[ticket.id] == {"email": "a@b.co"}
        assert f"- ID: '{feedback.id}'" in fake_llm.calls[0]["messages"][0]["content"]

        assert resumed.session.current_route.id == ticket.id
        assert resumed.session.current_step.id == "ask_product"
        assert resumed.session.data == {"email": "a@b.co"}
        assert [e.route_id for e in resumed.session.route_history][-2:] == [feedback.id, ticket.id]

    @pytest.mark.asyncio
    async def test_collected_values_go_to_the_new_route(self, two_route_agent, fake_llm, at_product_step):
        feedback = two_route_agent.routes.get_route("Collect Feedback")
        fake_llm.responses = [
            AgentDecision(
                reply_to_user="Thanks for the 5!",
                route=feedback.id,
                collected=[FieldValue(field="rating", value=5), FieldValue(field="product", value="Printer")],
            )
        ]

        response = await two_route_agent.respond(user("Forget it, 5 stars"), at_product_step)

        assert response.is_route_complete is True
        assert response.session.data_by_route[feedback.id] == {"rating": 5}

    @pytest.mark.asyncio
    async def test_unknown_or_ineligible_route_is_ignored(self, fake_llm, session, caplog):
        gated = Route(title="Gated", when=lambda ctx: False, initial_step={"id": "g", "collect": ["g"]})
        agent = Agent(
            name="A",
            llm_provider=fake_llm,
            routes=[build_support_ticket_route(), gated],
            router=SingleRouteRouter(),
        )
        fake_llm.responses = [
            AgentDecision(reply_to_user="What is your email?", route="nowhere"),
            AgentDecision(reply_to_user="What is your email?", route=gated.id),
        ]

        with caplog.at_level(logging.WARNING):
            first = await agent.respond(user("hello"), session)
        second = await agent.respond(user("hello again"), first.session)

        assert "nowhere" in caplog.text
        assert second.session.current_route.title == "Open Support Ticket"
        assert second.session.current_step.id == "ask_email"


class TestOptionalFields:
    @pytest.mark.asyncio
    async def test_declined_comment_completes_feedback(self, fake_llm, session):
        agent = Agent(name="A", llm_provider=fake_llm, routes=[build_feedback_route()])
        fake_llm.responses = [
            decision("Sorry to hear that.", rating=2),
            decision("Would you like to add a comment?"),
            decision("No problem, thanks!"),
        ]

        rated = await agent.respond(user("2"), session)
        asked = await agent.respond(user("ok"), rated.session)
        declined = await agent.respond(user("no comment"), asked.session)

        assert rated.session.current_step.id == "ask_comment"
        assert asked.is_route_complete is False
        assert declined.is_route_complete is True
        assert declined.session.current_route is None
        assert declined.session.data_by_route[agent.routes.get_route("Collect Feedback").id] == {"rating": 2}
