"""
Shared test fixtures.

The LLM is always replaced by a scripted fake; nothing here talks to the
network.
"""

from typing import Any, List

import pytest

from convoroute.domain.route import Route
from convoroute.domain.step import END_ROUTE
from convoroute.state.session import create_session
from convoroute.tools.manager import ToolManager


class FakeLLMProvider:
    """
    Returns scripted structured outputs in order and records every call.
    A scripted Exception is raised instead of returned.
    """

    def __init__(self, responses: List[Any] = None):
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    async def generate_structured_output(self, messages, response_model, temperature=0.0):
        self.calls.append({"messages": messages, "response_model": response_model})
        if not self.responses:
            raise AssertionError(f"Unexpected LLM call for {response_model.__name__}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    @property
    def last_system_prompt(self) -> str:
        return self.calls[-1]["messages"][0]["content"]


@pytest.fixture
def fake_llm():
    return FakeLLMProvider()


@pytest.fixture
def session():
    return create_session("session-1")


@pytest.fixture
def tool_manager():
    """ToolManager with no backoff so retry tests stay fast."""
    return ToolManager(timeout=1.0, retry_count=2, retry_base_delay=0.0, retry_max_delay=0.0)


@pytest.fixture
def linear_route():
    """A -> B -> END, with A collecting x and B requiring it."""
    route = Route(
        title="Linear",
        required_fields=["x", "y"],
        initial_step={"id": "A", "prompt": "Ask for x", "collect": ["x"]},
    )
    b = route.initial_step.next_step(id="B", prompt="Ask for y", requires=["x"], collect=["y"])
    b.next_step(END_ROUTE)
    return route
