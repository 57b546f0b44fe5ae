"""
Tests for route eligibility and the shipped routers.
"""

import logging

import pytest

from convoroute.domain.route import Route
from convoroute.schemas.decisions import RouteSelection
from convoroute.services.route_router import LLMRouteRouter, SingleRouteRouter, eligible_routes
from convoroute.state.models import Message


@pytest.fixture
def routes():
    return [
        Route(title="Billing", id="billing", description="Invoices and payments", when="the user mentions money"),
        Route(title="Tech", id="tech", when=lambda ctx: ctx.context.get("plan") != "free"),
        Route(title="Sales", id="sales", skip_if=lambda ctx: ctx.context.get("existing_customer")),
    ]


HISTORY = [Message(role="user", content="my invoice is wrong")]


class TestEligibility:
    @pytest.mark.asyncio
    async def test_when_and_skip_if_filter_routes(self, routes, session):
        everyone = await eligible_routes(routes, session, HISTORY, {})
        free_customer = await eligible_routes(
            routes, session, HISTORY, {"plan": "free", "existing_customer": True}
        )

        assert [r.id for r in everyone] == ["billing", "tech", "sales"]
        assert [r.id for r in free_customer] == ["billing"]


class TestSingleRouteRouter:
    @pytest.mark.asyncio
    async def test_first_eligible_route(self, routes, session):
        selection = await SingleRouteRouter().select_route(routes, session, HISTORY, {"plan": "free"})

        assert selection.route_id == "billing"

    @pytest.mark.asyncio
    async def test_nothing_eligible(self, session):
        gated = Route(title="Gated", when=lambda ctx: False)

        assert await SingleRouteRouter().select_route([gated], session, HISTORY) is None


class TestLLMRouteRouter:
    @pytest.mark.asyncio
    async def test_llm_picks_among_eligible(self, routes, session, fake_llm):
        fake_llm.responses = [RouteSelection(route_id="billing", reasoning="invoice")]
        router = LLMRouteRouter(fake_llm, agent_name="Support Assistant")

        selection = await router.select_route(routes, session, HISTORY, {})

        prompt = fake_llm.last_system_prompt
        assert selection.route_id == "billing"
        assert "router of Support Assistant" in prompt
        assert "Use when: the user mentions money" in prompt
        assert fake_llm.calls[0]["messages"][1] == {"role": "user", "content": "my invoice is wrong"}

    @pytest.mark.asyncio
    async def test_single_eligible_route_skips_llm(self, routes, session, fake_llm):
        router = LLMRouteRouter(fake_llm)

        selection = await router.select_route(routes, session, HISTORY, {"plan": "free", "existing_customer": True})

        assert selection.route_id == "billing"
        assert fake_llm.calls == []

    @pytest.mark.asyncio
    async def test_unknown_route_id_is_rejected(self, routes, session, fake_llm, caplog):
        fake_llm.responses = [RouteSelection(route_id="made_up")]

        with caplog.at_level(logging.WARNING):
            selection = await LLMRouteRouter(fake_llm).select_route(routes, session, HISTORY, {})

        assert selection is None
        assert "made_up" in caplog.text

    @pytest.mark.asyncio
    async def test_provider_failure_returns_none(self, routes, session, fake_llm):
        fake_llm.responses = [RuntimeError("rate limited")]

        assert await LLMRouteRouter(fake_llm).select_route(routes, session, HISTORY, {}) is None
