"""
Tool Layer

Tool definitions, the ToolManager registry/executor and pattern factories.
"""

from convoroute.tools.manager import ToolManager
from convoroute.tools.models import (
    ToolContext,
    ToolDefinition,
    ToolExecutionResult,
    ToolResult,
)
from convoroute.tools.patterns import (
    create_api_call,
    create_computation,
    create_data_enrichment,
    create_validation,
)

__all__ = [
    "ToolContext",
    "ToolDefinition",
    "ToolExecutionResult",
    "ToolManager",
    "ToolResult",
    "create_api_call",
    "create_computation",
    "create_data_enrichment",
    "create_validation",
]
