"""
Tool Layer - Data Models

Plain dataclasses describing tools, the context handed to a tool handler,
and what comes back from an execution.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union


@dataclass
class ToolContext:
    """
    Everything a tool handler may read.

    Attributes:
        context: The caller-owned agent context (read it, return
            `context_update` to change it).
        data: Copy of the fields collected in the active route.
        history: Recent interaction history.
        args: Arguments for this invocation.
        route_id: Active route, if any.
        step_id: Active step, if any.
        metadata: Free-form extra data.
    """
    context: Mapping[str, Any] = field(default_factory=dict)
    data: Dict[str, Any] = field(default_factory=dict)
    history: List[Any] = field(default_factory=list)
    args: Dict[str, Any] = field(default_factory=dict)
    route_id: Optional[str] = None
    step_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def get_field(self, name: str, default: Any = None) -> Any:
        return self.data.get(name, default)

    def has_field(self, name: str) -> bool:
        return self.data.get(name) is not None


@dataclass
class ToolResult:
    """
    Structured handler return value.

    Attributes:
        data: The result payload.
        data_update: Patch merged into the session's collected data.
        context_update: Patch merged into the caller-owned agent context.
        success: Set False to report a failure without raising.
        error: Failure description when `success` is False.
        meta: Extra metadata copied into the execution result.
    """
    data: Any = None
    data_update: Optional[Dict[str, Any]] = None
    context_update: Optional[Dict[str, Any]] = None
    success: bool = True
    error: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


ToolHandler = Callable[[ToolContext], Union[Any, Awaitable[Any]]]


@dataclass
class ToolDefinition:
    """
    Attributes:
        id: Registry key. Alphanumerics, underscores and hyphens only.
        handler: Sync or async callable taking a ToolContext.
        name: Human-readable name, also accepted for lookups.
        description: What the tool does (shown to the language model).
        parameters: JSON-schema dict or free-text parameter description.
        timeout: Per-tool timeout in seconds, overriding the manager default.
            A sync handler that times out keeps running in its worker thread,
            so its timeouts are not retried.
    """
    id: str
    handler: ToolHandler
    name: Optional[str] = None
    description: Optional[str] = None
    parameters: Optional[Union[Dict[str, Any], str]] = None
    timeout: Optional[float] = None


@dataclass
class ToolExecutionResult:
    success: bool
    data: Any = None
    data_update: Optional[Dict[str, Any]] = None
    context_update: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
