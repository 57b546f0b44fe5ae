"""
Schemas - Structured Output Models for LLM Responses

Defines Pydantic models used for structured LLM outputs, ensuring
predictable and parseable results from the response stage and router.
"""

from convoroute.schemas.decisions import (
    AgentDecision,
    FieldValue,
    RouteSelection,
    ToolCallRequest,
)

__all__ = [
    "AgentDecision",
    "FieldValue",
    "RouteSelection",
    "ToolCallRequest",
]
