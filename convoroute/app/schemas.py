"""
API Layer - Request/Response Schemas

Pydantic models for API request and response validation.
"""

from datetime import datetime
from typing import Optional, Any

from pydantic import BaseModel, Field


class CreateSessionResponse(BaseModel):
    session_id: str


class UserMessage(BaseModel):
    text: str = Field(..., min_length=1)


class ChatMessage(BaseModel):
    role: str
    content: str


class ToolCallRead(BaseModel):
    tool_id: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class SessionRead(BaseModel):
    session_id: str
    status: str  # "IN_ROUTE" or "IDLE"
    current_route: Optional[str] = None
    current_step: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    history: list[ChatMessage] = Field(default_factory=list)
    updated_at: Optional[datetime] = None
    debug: Optional[dict[str, Any]] = None


class ChatResponse(BaseModel):
    reply: str
    is_route_complete: bool
    current_route: Optional[str] = None
    current_step: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    tool_calls: list[ToolCallRead] = Field(default_factory=list)
