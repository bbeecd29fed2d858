"""Abstract protocols (interfaces) for dependency inversion.

The agent-facing services depend on these interfaces rather than on the
OpenRouter client, so tests can substitute a scripted fake model.

Note: We use typing.Protocol for structural subtyping (duck typing).
"""
from __future__ import annotations

from abc import abstractmethod
from typing import Any, Dict, List, Optional, Protocol, Sequence

# Type aliases
Message = Dict[str, Any]
ToolResult = Dict[str, Any]


class LLMClient(Protocol):
    """Protocol for LLM API clients.

    Implementations should handle the specifics of communicating with
    different LLM providers (OpenAI, OpenRouter, Anthropic, etc.).
    """

    @abstractmethod
    async def complete(
        self,
        messages: Sequence[Message],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> str:
        """Send a chat completion request.

        Args:
            messages: Conversation history.
            model: Model identifier (uses default if None).
            temperature: Sampling temperature.
            max_tokens: Maximum tokens in response.

        Returns:
            The model's response text.
        """
        ...

    @abstractmethod
    async def complete_with_tools(
        self,
        messages: Sequence[Message],
        tools: List[Dict[str, Any]],
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 2048,
    ) -> Any:
        """Send a chat completion request with function calling.

        Returns:
            The API response object with potential tool calls.
        """
        ...

    @abstractmethod
    def parse_json_response(self, response: str) -> Optional[Dict[str, Any]]:
        """Extract a JSON object from a model response, None if there is none."""
        ...


class SQLGenerator(Protocol):
    """Protocol for turning transformation instructions into a query."""

    @abstractmethod
    async def generate(
        self,
        instructions: Sequence[str],
        table_name: str,
        columns: Sequence[Dict[str, str]],
        sample: Sequence[Dict[str, Any]],
    ) -> str:
        """Generate one read-only query implementing ``instructions``.

        Args:
            instructions: Transformation steps in natural language.
            table_name: Table the query must read from.
            columns: Column names and data types of that table.
            sample: A few rows of that table.

        Returns:
            The query text, without a trailing terminator.
        """
        ...
