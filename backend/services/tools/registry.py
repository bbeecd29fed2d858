"""Tool handler registry.

This module provides a registry for tool handlers, implementing the
Strategy pattern with centralized handler lookup.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Dict, List, Optional

from loguru import logger

from exceptions import SmartTransformationsError
from protocols import ToolResult
from services.tools.base import BaseToolHandler, ToolContext
from services.tools.handlers import (
    CreateTransformationHandler,
    GenerateLinesChartHandler,
    GenerateTransformationSqlHandler,
    QueryDataHandler,
)


class ToolRegistry:
    """Registry for tool handlers.

    Routes a tool call to the handler registered for its name. Every outcome,
    including unknown tools and handler exceptions, comes back as a result
    dictionary so the agent can read it and retry.

    Attributes:
        _handlers: List of registered handlers.
    """

    def __init__(self):
        """Initialize the registry with the default handlers."""
        self._handlers: List[BaseToolHandler] = []
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        handlers = [
            QueryDataHandler(),
            GenerateTransformationSqlHandler(),
            CreateTransformationHandler(),
            GenerateLinesChartHandler(),
        ]
        for handler in handlers:
            self.register(handler)

    def register(self, handler: BaseToolHandler) -> None:
        self._handlers.append(handler)

    def get_handler(self, tool_name: str) -> Optional[BaseToolHandler]:
        """Get the handler for a tool name, None if there is none."""
        for handler in self._handlers:
            if handler.can_handle(tool_name):
                return handler
        return None

    async def execute(self, context: ToolContext, tool_name: str, arguments: Dict[str, Any]) -> ToolResult:
        """Execute a tool call using the appropriate handler.

        Args:
            context: Session and dataset the call applies to.
            tool_name: Name of the tool to execute.
            arguments: Tool arguments.

        Returns:
            Tool result dictionary.
        """
        handler = self.get_handler(tool_name)
        if handler is None:
            return {"success": False, "error": f"Unknown tool: {tool_name}"}

        try:
            result = await handler.execute(context, arguments)
        except SmartTransformationsError as e:
            logger.warning("[Tools] {} failed: {}", tool_name, e.message)
            return {"success": False, "error": e.message}
        except Exception as e:
            logger.warning("[Tools] {} failed: {}", tool_name, e)
            return {"success": False, "error": str(e)}

        logger.info("[Tools] {} on dataset {} -> success={}", tool_name, context.dataset_id, result.get("success"))
        return result


@lru_cache(maxsize=1)
def get_tool_registry() -> ToolRegistry:
    """Get the singleton tool registry."""
    return ToolRegistry()
