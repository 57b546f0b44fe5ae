"""
Execution Layer - Route Orchestration and Response Generation

Defines the RouteEngine (deterministic state machine over the step graph)
and the ResponseGenerator (stateless LLM wrapper) that together process a
conversational turn.
"""

from convoroute.execution.engine import RouteEngine
from convoroute.execution.responder import ResponseGenerator
from convoroute.execution.schemas.state_machine import (
    StateMachineTransition,
    StepResolution,
    TurnState,
)

__all__ = [
    "ResponseGenerator",
    "RouteEngine",
    "StateMachineTransition",
    "StepResolution",
    "TurnState",
]
