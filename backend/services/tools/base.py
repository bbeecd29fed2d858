"""Base tool handler and the context tools run in."""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from protocols import SQLGenerator, ToolResult
from services.transformations import TransformationPipeline


@dataclass
class ToolContext:
    """What a tool call may touch: one session and one dataset.

    Attributes:
        session: Session for the whole tool call.
        dataset_id: Dataset the agent is working on.
        sql_generator: Generator for ``generate_transformation_sql``.
    """
    session: AsyncSession
    dataset_id: int
    sql_generator: Optional[SQLGenerator] = None

    def pipeline(self) -> TransformationPipeline:
        return TransformationPipeline(self.session, self.sql_generator)


class InvalidToolArguments(Exception):
    """Tool arguments did not match the tool's schema."""
    pass


class BaseToolHandler(ABC):
    """Abstract base class for tool handlers.

    Each handler serves one tool name. Arguments are validated against
    ``arguments_model`` before ``execute`` runs.
    """

    arguments_model: Type[BaseModel]

    @property
    @abstractmethod
    def name(self) -> str:
        """The tool name exposed to the model."""
        ...

    def can_handle(self, tool_name: str) -> bool:
        return tool_name == self.name

    def parse_arguments(self, arguments: Dict[str, Any]) -> BaseModel:
        """Validate raw tool arguments.

        Raises:
            InvalidToolArguments: If the arguments do not match the schema.
        """
        try:
            return self.arguments_model.model_validate(arguments or {})
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc']) or 'arguments'}: {error['msg']}"
                for error in e.errors()
            )
            raise InvalidToolArguments(f"Invalid arguments for {self.name}: {problems}") from e

    @abstractmethod
    async def execute(self, context: ToolContext, arguments: Dict[str, Any]) -> ToolResult:
        """Run the tool.

        Args:
            context: Session, dataset and services available to the tool.
            arguments: Arguments decoded from the model's tool call.

        Returns:
            Dictionary with 'success' key and results or 'error'.
        """
        ...

    def _error(self, message: str) -> ToolResult:
        return {"success": False, "error": message}

    def _success(self, **kwargs: Any) -> ToolResult:
        return {"success": True, **kwargs}
