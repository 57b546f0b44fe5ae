"""
Convoroute

A framework for multi-turn conversational agents: routes and steps form a
declared graph, a deterministic engine decides which step a conversation is
on and what data it still needs, and an LLM only phrases the replies.
"""

from convoroute.domain import (
    END_ROUTE,
    Combinator,
    ConditionEvaluator,
    EvaluationContext,
    Guideline,
    GuidelineMatcher,
    Route,
    RouteTransitionConfig,
    Step,
)
from convoroute.state import (
    SessionState,
    create_session,
    enter_route,
    merge_collected,
    record_to_session_state,
    session_state_to_record,
)
from convoroute.tools import ToolContext, ToolDefinition, ToolManager, ToolResult
from convoroute.schemas import AgentDecision
from convoroute.execution import ResponseGenerator, RouteEngine
from convoroute.services.agent import Agent, AgentResponse

__all__ = [
    # Domain Layer
    "END_ROUTE",
    "Combinator",
    "ConditionEvaluator",
    "EvaluationContext",
    "Guideline",
    "GuidelineMatcher",
    "Route",
    "RouteTransitionConfig",
    "Step",
    # State Layer
    "SessionState",
    "create_session",
    "enter_route",
    "merge_collected",
    "record_to_session_state",
    "session_state_to_record",
    # Tools
    "ToolContext",
    "ToolDefinition",
    "ToolManager",
    "ToolResult",
    # Schemas
    "AgentDecision",
    # Execution Layer
    "ResponseGenerator",
    "RouteEngine",
    # Services
    "Agent",
    "AgentResponse",
]
