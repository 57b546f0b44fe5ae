"""
Schemas - Structured Output Models for LLM Responses

This module defines Pydantic models used for structured LLM outputs.
These schemas enforce strict JSON formatting on LLM responses. The routing
core only reads `collected`, `route`, `step` and `tool_calls`; the reply
text is passed through to the user untouched.

Strict structured outputs do not accept free-form objects, so key/value
data is expressed as lists of FieldValue entries.
"""
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field


class FieldValue(BaseModel):
    """
    A single extracted value for a schema field.
    """
    field: str = Field(..., description="The schema field name.")
    value: Union[str, float, bool, None] = Field(
        ..., description="The extracted value, or null if the user did not provide it."
    )


class ToolCallRequest(BaseModel):
    """
    A tool the model wants executed after this turn.
    """
    tool_id: str = Field(..., description="Id or name of one of the available tools.")
    arguments: List[FieldValue] = Field(
        default_factory=list, description="Arguments for the tool call."
    )

    def arguments_dict(self) -> Dict[str, Any]:
        return {item.field: item.value for item in self.arguments}


class AgentDecision(BaseModel):
    """
    The strict JSON structure the LLM must generate for every turn.
    """
    reply_to_user: str = Field(
        ...,
        description="The natural language response to show the user."
    )
    collected: List[FieldValue] = Field(
        default_factory=list,
        description="Values for the route's data fields that the user provided in this conversation."
    )
    route: Optional[str] = Field(
        None,
        description="Id of the route the conversation belongs to, if it should change."
    )
    step: Optional[str] = Field(
        None,
        description="Id of the candidate step that best fits the conversation, if several are offered."
    )
    tool_calls: List[ToolCallRequest] = Field(
        default_factory=list,
        description="Tools to run after this reply."
    )
    reasoning: str = Field(
        "",
        description="Brief internal chain-of-thought justifying the reply and step choice."
    )

    def collected_dict(self) -> Dict[str, Any]:
        """Extracted values with nulls dropped."""
        return {item.field: item.value for item in self.collected if item.value is not None}


class RouteSelection(BaseModel):
    """
    The router's choice of route for the conversation.
    """
    route_id: Optional[str] = Field(
        None,
        description="Id of the best matching route, or null if none applies."
    )
    reasoning: str = Field(
        "",
        description="Why this route was chosen."
    )
