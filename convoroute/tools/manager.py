"""
Tool Manager

Registry of invocable tools plus the execution wrapper around them:
per-attempt timeout, retries with exponential backoff for transient
failures, and an ordered fallback chain.

Resolution order for a tool reference is step -> route -> registry, matching
either the tool id or its name.
"""

import asyncio
import inspect
import logging
import re
import time
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

import httpx

from ..config import settings
from ..exceptions import ToolCreationError, ToolExecutionError
from .models import ToolContext, ToolDefinition, ToolExecutionResult, ToolResult

logger = logging.getLogger(__name__)

TOOL_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

TRANSIENT_ERROR_PATTERNS = [
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"timeout",
        r"timed out",
        r"network",
        r"connection",
        r"ECONNRESET",
        r"ECONNREFUSED",
        r"ETIMEDOUT",
        r"ENOTFOUND",
        r"temporarily unavailable",
        r"rate limit",
        r"\b(429|502|503|504)\b",
    )
]

RESULT_KEYS = {"data", "data_update", "context_update", "success", "error", "meta"}


class ToolManager:
    def __init__(
        self,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        retry_max_delay: Optional[float] = None,
    ):
        self.timeout = settings.TOOL_TIMEOUT_SECONDS if timeout is None else timeout
        self.retry_count = settings.TOOL_RETRY_COUNT if retry_count is None else retry_count
        self.retry_base_delay = (
            settings.TOOL_RETRY_BASE_DELAY if retry_base_delay is None else retry_base_delay
        )
        self.retry_max_delay = (
            settings.TOOL_RETRY_MAX_DELAY if retry_max_delay is None else retry_max_delay
        )
        self._registry: Dict[str, ToolDefinition] = {}

    # ==========================================================================
    # Registry
    # ==========================================================================

    def register(self, tool: ToolDefinition) -> None:
        self._validate(tool)
        if tool.id in self._registry:
            logger.warning(f"Overwriting registered tool '{tool.id}'")
        self._registry[tool.id] = tool

    def register_many(self, tools: Iterable[ToolDefinition]) -> None:
        for tool in tools:
            self.register(tool)

    def unregister(self, tool_id: str) -> bool:
        return self._registry.pop(tool_id, None) is not None

    def is_registered(self, tool_id: str) -> bool:
        return self.get_registered(tool_id) is not None

    def get_registered(self, tool_ref: str) -> Optional[ToolDefinition]:
        tool = self._registry.get(tool_ref)
        if tool:
            return tool
        return next((t for t in self._registry.values() if t.name == tool_ref), None)

    def registered_ids(self) -> List[str]:
        return list(self._registry)

    def _validate(self, tool: Any) -> None:
        if not isinstance(tool, ToolDefinition):
            raise ToolCreationError(f"Expected a ToolDefinition, got {type(tool).__name__}")
        if not isinstance(tool.id, str) or not tool.id:
            raise ToolCreationError("Tool id must be a non-empty string")
        if not TOOL_ID_PATTERN.match(tool.id):
            raise ToolCreationError(
                f"Tool id '{tool.id}' may only contain letters, digits, underscores and hyphens",
                tool_id=tool.id,
            )
        if not callable(tool.handler):
            raise ToolCreationError(f"Tool '{tool.id}' has no callable handler", tool_id=tool.id)

    # ==========================================================================
    # Resolution
    # ==========================================================================

    def resolve(self, tool_ref: str, step: Any = None, route: Any = None) -> Optional[ToolDefinition]:
        """Finds a tool by id or name, searching step, route, then registry."""
        for scope in (getattr(step, "tools", None), getattr(route, "tools", None)):
            for item in scope or []:
                if isinstance(item, ToolDefinition) and tool_ref in (item.id, item.name):
                    return item
        return self.get_registered(tool_ref)

    def get_available(self, step: Any = None, route: Any = None) -> List[ToolDefinition]:
        """All tools visible from a scope. Step tools override route tools, which override the registry."""
        available: Dict[str, ToolDefinition] = dict(self._registry)

        for item in getattr(route, "tools", None) or []:
            if isinstance(item, ToolDefinition):
                available[item.id] = item

        for item in getattr(step, "tools", None) or []:
            if isinstance(item, ToolDefinition):
                available[item.id] = item
            else:
                registered = self.get_registered(item)
                if registered:
                    available[registered.id] = registered

        return list(available.values())

    def validate_tool_references(
        self, tool_refs: Iterable[str], step: Any = None, route: Any = None
    ) -> List[str]:
        """Returns the references that do not resolve to any tool."""
        return [ref for ref in tool_refs if self.resolve(ref, step, route) is None]

    # ==========================================================================
    # Execution
    # ==========================================================================

    async def execute(
        self,
        tool_ref: str,
        args: Optional[Dict[str, Any]] = None,
        *,
        context: Optional[ToolContext] = None,
        step: Any = None,
        route: Any = None,
        fallback_tools: Optional[List[str]] = None,
        timeout: Optional[float] = None,
        retry_count: Optional[int] = None,
    ) -> ToolExecutionResult:
        """
        Runs a tool, retrying transient failures and walking the fallback chain.

        Raises:
            ToolExecutionError: when neither the tool nor any fallback
                produced a result.
        """
        tool_context = replace(context or ToolContext(), args=dict(args or {}))
        retries = self.retry_count if retry_count is None else retry_count

        candidates = [tool_ref] + list(fallback_tools or [])
        attempted: List[str] = []
        last_error: Optional[BaseException] = None

        for index, candidate in enumerate(candidates):
            tool = self.resolve(candidate, step, route)
            if tool is None:
                logger.warning(f"Tool '{candidate}' could not be resolved")
                continue

            attempted.append(tool.id)
            attempt_timeout = timeout if timeout is not None else (tool.timeout or self.timeout)
            started = time.monotonic()
            try:
                result, attempts = await self._run_with_retries(
                    tool, tool_context, attempt_timeout, retries
                )
            except Exception as e:
                last_error = e
                logger.warning(f"Tool '{tool.id}' failed: {e}")
                continue

            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.debug(f"Tool '{tool.id}' executed in {elapsed_ms}ms after {attempts} attempt(s)")
            result.metadata.update(
                {
                    "tool_id": tool.id,
                    "requested_tool_id": tool_ref,
                    "attempts": attempts,
                    "elapsed_ms": elapsed_ms,
                    "fallback_used": index > 0,
                }
            )
            return result

        execution_context = {
            "args": tool_context.args,
            "attempted": attempted,
            "fallback_tools": list(fallback_tools or []),
            "route_id": tool_context.route_id,
            "step_id": tool_context.step_id,
        }
        if last_error is None:
            message = f"Tool '{tool_ref}' not found"
        else:
            message = f"Tool '{tool_ref}' failed: {last_error}"
        logger.error(f"{message} (attempted: {attempted})")
        raise ToolExecutionError(message, tool_ref, execution_context, last_error) from last_error

    async def _run_with_retries(
        self, tool: ToolDefinition, context: ToolContext, timeout: float, retries: int
    ):
        attempt = 0
        while True:
            attempt += 1
            try:
                raw = await asyncio.wait_for(self._invoke(tool, context), timeout=timeout)
                return self._normalize_result(raw), attempt
            except Exception as e:
                if attempt > retries or not self._is_transient(e):
                    raise
                if isinstance(e, asyncio.TimeoutError) and not self._is_async(tool.handler):
                    logger.warning(f"Sync tool '{tool.id}' timed out and may still be running, not retrying")
                    raise
                delay = min(self.retry_base_delay * (2 ** (attempt - 1)), self.retry_max_delay)
                logger.warning(
                    f"Transient failure in tool '{tool.id}' (attempt {attempt}), retrying in {delay}s: {e!r}"
                )
                await asyncio.sleep(delay)

    @staticmethod
    def _is_async(handler: Any) -> bool:
        return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
            getattr(handler, "__call__", None)
        )

    async def _invoke(self, tool: ToolDefinition, context: ToolContext) -> Any:
        if self._is_async(tool.handler):
            return await tool.handler(context)
        outcome = await asyncio.to_thread(tool.handler, context)
        if inspect.isawaitable(outcome):
            outcome = await outcome
        return outcome

    @staticmethod
    def _is_transient(error: BaseException) -> bool:
        if isinstance(error, ToolExecutionError) and error.cause is not None:
            return ToolManager._is_transient(error.cause)
        if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError, httpx.TransportError)):
            return True
        if isinstance(error, httpx.HTTPStatusError):
            return error.response.status_code in (429, 502, 503, 504)
        message = str(error)
        return any(pattern.search(message) for pattern in TRANSIENT_ERROR_PATTERNS)

    @staticmethod
    def _normalize_result(raw: Any) -> ToolExecutionResult:
        if isinstance(raw, ToolResult):
            return ToolExecutionResult(
                success=raw.success,
                data=raw.data,
                data_update=raw.data_update,
                context_update=raw.context_update,
                error=raw.error,
                metadata=dict(raw.meta),
            )
        if isinstance(raw, dict) and raw and set(raw) <= RESULT_KEYS:
            return ToolExecutionResult(
                success=raw.get("success", True),
                data=raw.get("data"),
                data_update=raw.get("data_update"),
                context_update=raw.get("context_update"),
                error=raw.get("error"),
                metadata=dict(raw.get("meta") or {}),
            )
        return ToolExecutionResult(success=True, data=raw)
