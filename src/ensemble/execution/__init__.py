"""Tool execution gateway."""

from ensemble.execution.local_gateway import LocalToolGateway
from ensemble.execution.protocol import ToolCall, ToolGateway, ToolResult
from ensemble.execution.tools import TOOL_CATALOG, OperationClass, ToolSpec, get_tool

__all__ = [
    "LocalToolGateway",
    "OperationClass",
    "TOOL_CATALOG",
    "ToolCall",
    "ToolGateway",
    "ToolResult",
    "ToolSpec",
    "get_tool",
]
