"""
Tools Package

The catalogue of operations the model may call, and the dispatcher
that executes them against organization-scoped storage.
"""

from expense_assistant.tools.dispatcher import (
    ToolCall,
    ToolDispatcher,
    ToolResult,
    UnknownToolError,
)
from expense_assistant.tools.resolver import NameResolver, ResolutionError
from expense_assistant.tools.schema import (
    DESTRUCTIVE_TOOLS,
    TOOL_SCHEMAS,
    ToolName,
    ToolSchema,
    get_tool_schemas,
)

__all__ = [
    "DESTRUCTIVE_TOOLS",
    "NameResolver",
    "ResolutionError",
    "TOOL_SCHEMAS",
    "ToolCall",
    "ToolDispatcher",
    "ToolName",
    "ToolResult",
    "ToolSchema",
    "UnknownToolError",
    "get_tool_schemas",
]
