"""
Exceptions

Error taxonomy shared by every layer. Definition problems are detected when
routes, steps, guidelines and tools are built; graph problems surface while a
turn is being resolved; tool failures surface after retries and fallbacks.
"""

from typing import Any, Dict, Optional


class ConvorouteError(Exception):
    """Base class for all errors raised by this package."""
    pass


class DefinitionError(ConvorouteError):
    """Raised when a route, step, guideline or tool definition is malformed."""
    pass


class ToolCreationError(DefinitionError):
    """Raised when a tool definition or a tool pattern config is invalid."""

    def __init__(self, message: str, tool_id: str = "unknown"):
        super().__init__(message)
        self.tool_id = tool_id


class RouteGraphError(ConvorouteError):
    """Raised when the route/step graph is inconsistent at traversal time."""
    pass


class ToolExecutionError(ConvorouteError):
    """
    Raised when a tool cannot produce a result after retries and fallbacks.

    Attributes:
        tool_id: The primary tool that was requested.
        execution_context: Arguments, attempt count and fallbacks tried.
        cause: The last underlying error, if any.
        session: Working session state at the point of failure. Set by the
            RouteEngine so the caller can decide to retry or keep progress.
    """

    def __init__(
        self,
        message: str,
        tool_id: str,
        execution_context: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None,
    ):
        super().__init__(message)
        self.tool_id = tool_id
        self.execution_context = execution_context or {}
        self.cause = cause
        self.session = None


class SessionNotFoundError(ConvorouteError):
    """Raised by the service layer when a session id has no stored state."""

    def __init__(self, session_id: str):
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class NoMatchingRouteError(ConvorouteError):
    """Raised when the router cannot find a route for the user's query."""
    pass
