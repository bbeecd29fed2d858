"""SQL generation service.

Turns natural-language transformation instructions into a single read-only
query against the latest version table of a dataset.
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from loguru import logger

from config import settings
from protocols import LLMClient
from services.llm.client import LLMAPIError, get_llm_client
from services.llm.prompts import build_sql_generation_prompt, build_sql_generation_request


class SQLGenerationService:
    """Service for generating transformation queries.

    The model must answer with ``{"sql": "..."}``; the query is returned as
    given, without validation.

    Attributes:
        _client: LLM client for making API calls.
        _model: Model used for generation.
        _dialect: SQL engine name shown to the model.
    """

    def __init__(self, client: Optional[LLMClient] = None, model: Optional[str] = None, dialect: str = "PostgreSQL"):
        """Initialize the SQL generator.

        Args:
            client: LLM client instance (uses default if None).
            model: Optional model identifier (defaults to SQL_GENERATION_MODEL).
            dialect: SQL engine name used in the prompt.
        """
        self._client = client if client is not None else get_llm_client()
        self._model = model or settings.llm.sql_model
        self._dialect = dialect

    async def generate(
        self,
        instructions: Sequence[str],
        table_name: str,
        columns: Sequence[Dict[str, str]],
        sample: Sequence[Dict[str, Any]],
    ) -> str:
        """Generate a query implementing ``instructions``.

        Args:
            instructions: Transformation steps in natural language.
            table_name: Table the query must read from.
            columns: Column names and data types of that table.
            sample: A few rows of that table.

        Returns:
            The generated query text.

        Raises:
            LLMAPIError: If the response does not contain a query.
        """
        messages = [
            {"role": "system", "content": build_sql_generation_prompt(self._dialect)},
            {"role": "user", "content": build_sql_generation_request(instructions, table_name, columns, sample)},
        ]

        response = await self._client.complete(messages, model=self._model, temperature=0, max_tokens=1024)
        result = self._client.parse_json_response(response)

        sql = result.get("sql") if result else None
        if not isinstance(sql, str) or not sql.strip():
            raise LLMAPIError("SQL generation returned no query")

        logger.debug("[SQL] Generated for {}: {}", table_name, sql)
        return sql.strip()
