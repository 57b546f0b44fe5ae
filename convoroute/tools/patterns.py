"""
Tool Patterns

Factories for the common tool shapes. Each validates its configuration up
front (ToolCreationError) and returns a ToolDefinition that can be
registered with a ToolManager or attached to a step or route.
"""

import inspect
import logging
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from ..exceptions import ToolCreationError, ToolExecutionError
from .models import ToolContext, ToolDefinition, ToolResult

logger = logging.getLogger(__name__)

HTTP_METHODS = ("GET", "POST", "PUT", "DELETE")


async def _maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


def _pick_fields(context: ToolContext, fields: List[str]) -> Dict[str, Any]:
    return {name: context.get_field(name) for name in fields if context.has_field(name)}


def _check(errors: List[str], label: str, tool_id: Optional[str]) -> None:
    if errors:
        raise ToolCreationError(
            f"{label} configuration validation failed: {'; '.join(errors)}",
            tool_id=tool_id or "unknown",
        )


def _field_list_errors(fields: Any, label: str) -> List[str]:
    if not isinstance(fields, (list, tuple)) or not fields:
        return [f"{label} must be a non-empty list"]
    return []


# ==============================================================================
# Validation
# ==============================================================================


def create_validation(
    id: str,
    fields: List[str],
    validator: Callable[..., Any],
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> ToolDefinition:
    """
    `validator(context, field_data)` returns a dict such as
    `{"valid": bool, "errors": [...], "warnings": [...]}`. Exceptions raised
    by the validator become an invalid result instead of propagating.
    """
    errors = _field_list_errors(fields, "Validation fields")
    if not callable(validator):
        errors.append("Validation validator must be callable")
    _check(errors, "Validation", id)

    async def handler(context: ToolContext) -> ToolResult:
        try:
            outcome = await _maybe_await(validator(context.context, _pick_fields(context, fields)))
        except Exception as e:
            logger.error(f"Validation failed for {id}: {e}")
            outcome = {
                "valid": False,
                "errors": [{"field": "validation", "message": f"Validation error: {e}"}],
                "warnings": [],
            }
        logger.debug(f"Validation completed for tool {id}")
        return ToolResult(data=outcome)

    return ToolDefinition(
        id=id,
        handler=handler,
        name=name or f"Validation: {id}",
        description=description or f"Validates data fields: {', '.join(fields)}",
        parameters={"type": "object", "properties": {"fields": {"type": "array", "items": {"type": "string"}}}},
    )


# ==============================================================================
# Data Enrichment
# ==============================================================================


def create_data_enrichment(
    id: str,
    fields: List[str],
    enricher: Callable[..., Any],
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> ToolDefinition:
    """`enricher(context, field_data)` returns a patch merged into the session data."""
    errors = _field_list_errors(fields, "Data enrichment fields")
    if not callable(enricher):
        errors.append("Data enrichment enricher must be callable")
    _check(errors, "Data enrichment", id)

    async def handler(context: ToolContext) -> ToolResult:
        try:
            enriched = await _maybe_await(enricher(context.context, _pick_fields(context, fields)))
        except Exception as e:
            raise ToolExecutionError(
                f"Data enrichment failed: {e}", id, {"fields": list(fields)}, e
            ) from e
        data_update = enriched if isinstance(enriched, dict) else None
        return ToolResult(data=enriched, data_update=data_update)

    return ToolDefinition(
        id=id,
        handler=handler,
        name=name or f"Data Enrichment: {id}",
        description=description or f"Enriches data fields: {', '.join(fields)}",
    )


# ==============================================================================
# API Call
# ==============================================================================


def create_api_call(
    id: str,
    endpoint: Union[str, Callable[..., str]],
    method: str = "GET",
    headers: Union[Dict[str, str], Callable[..., Dict[str, str]], None] = None,
    body: Optional[Callable[..., Any]] = None,
    transform: Optional[Callable[[Any], Any]] = None,
    name: Optional[str] = None,
    description: Optional[str] = None,
    timeout: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> ToolDefinition:
    """
    Builds a tool that performs one HTTP request with httpx.

    `endpoint(context, data)`, `headers(context)` and `body(context, data, args)`
    may be callables. JSON responses are decoded, anything else is returned
    as text, and `transform` post-processes the payload.
    """
    errors: List[str] = []
    if not endpoint:
        errors.append("API call endpoint is required")
    elif not isinstance(endpoint, str) and not callable(endpoint):
        errors.append("API call endpoint must be a string or callable")
    if method not in HTTP_METHODS:
        errors.append(f"API call method must be one of: {', '.join(HTTP_METHODS)}")
    if headers is not None and not isinstance(headers, dict) and not callable(headers):
        errors.append("API call headers must be a dict or callable")
    if body is not None and not callable(body):
        errors.append("API call body must be callable")
    if transform is not None and not callable(transform):
        errors.append("API call transform must be callable")
    _check(errors, "API call", id)

    async def handler(context: ToolContext) -> Any:
        url = endpoint(context.context, context.data) if callable(endpoint) else endpoint
        request_headers = {"Content-Type": "application/json"}
        request_headers.update((headers(context.context) if callable(headers) else headers) or {})
        payload = None
        if body is not None and method in ("POST", "PUT"):
            payload = body(context.context, context.data, context.args)

        try:
            async with httpx.AsyncClient(transport=transport, timeout=timeout) as client:
                response = await client.request(method, url, headers=request_headers, json=payload)
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"API call failed for {id}: {e}")
            raise ToolExecutionError(
                f"API call failed: {e}", id, {"endpoint": url, "method": method, "args": context.args}, e
            ) from e

        if "application/json" in response.headers.get("content-type", ""):
            result = response.json()
        else:
            result = response.text
        logger.debug(f"API call completed for tool {id}")
        return transform(result) if transform else result

    return ToolDefinition(
        id=id,
        handler=handler,
        name=name or f"API Call: {id}",
        description=description or "Makes API call to external service",
        parameters={
            "type": "object",
            "properties": {
                "endpoint": {"type": "string"},
                "method": {"type": "string", "enum": list(HTTP_METHODS)},
            },
        },
        timeout=timeout,
    )


# ==============================================================================
# Computation
# ==============================================================================


def create_computation(
    id: str,
    inputs: List[str],
    compute: Callable[..., Any],
    name: Optional[str] = None,
    description: Optional[str] = None,
) -> ToolDefinition:
    """`compute(context, input_data, args)` returns the result payload."""
    errors = _field_list_errors(inputs, "Computation inputs")
    if not callable(compute):
        errors.append("Computation compute function is required")
    _check(errors, "Computation", id)

    async def handler(context: ToolContext) -> Any:
        try:
            return await _maybe_await(compute(context.context, _pick_fields(context, inputs), context.args))
        except Exception as e:
            raise ToolExecutionError(
                f"Computation failed: {e}", id, {"inputs": list(inputs), "args": context.args}, e
            ) from e

    return ToolDefinition(
        id=id,
        handler=handler,
        name=name or f"Computation: {id}",
        description=description or f"Performs computation on inputs: {', '.join(inputs)}",
    )
