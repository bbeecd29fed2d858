"""Agent tool handlers package.

This package provides the handlers behind the agent's tools following the
Strategy pattern: one handler per tool name, dispatched by the registry.
"""
from services.tools.base import BaseToolHandler, ToolContext
from services.tools.registry import ToolRegistry, get_tool_registry

__all__ = [
    "BaseToolHandler",
    "ToolContext",
    "ToolRegistry",
    "get_tool_registry",
]
