"""Transformation pipeline.

The operations behind the agent's tools: describe the latest version to the
SQL generator, run capped read queries, and apply a query as a new version.
A transformation moves from proposed instructions to generated SQL to either
an applied version or a failure the agent can retry.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import QueryExecutionError, SmartTransformationsError
from models.dataset import TransformationResult
from protocols import SQLGenerator
from services.engine import QueryResult, SQLEngine, error_message, validate_read_query
from services.reader import DatasetReader
from services.versions import VersionStore


def stringify(value: Any) -> str:
    return "NULL" if value is None else str(value)


class TransformationPipeline:
    """Generates, previews and applies transformations of one dataset.

    Attributes:
        _session: Session shared with the version store.
        _sql_generator: Generator used by ``generate_transformation_sql``.
    """

    def __init__(self, session: AsyncSession, sql_generator: Optional[SQLGenerator] = None):
        self._session = session
        self._sql_generator = sql_generator
        self._engine = SQLEngine(session)
        self._versions = VersionStore(session)
        self._reader = DatasetReader(session)

    async def generate_transformation_sql(self, dataset_id: int, instructions: Sequence[str]) -> str:
        """Ask the SQL generator for a query implementing ``instructions``.

        The generator sees the latest version table, its described columns
        and a sample of its rows. The returned query is not validated.

        Raises:
            NotFoundError: If the dataset does not exist.
            ValueError: If no SQL generator is configured.
        """
        if self._sql_generator is None:
            raise ValueError("No SQL generator configured")

        schema = await self._versions.latest_schema(dataset_id)
        columns = await self._engine.describe_columns(schema.table_name)
        sample = await self._reader.sample(dataset_id, settings.datasets.sample_size)

        return await self._sql_generator.generate(
            list(instructions),
            schema.table_name,
            [column.model_dump() for column in columns],
            sample,
        )

    async def run_query(self, sql: str, limit: Optional[int] = None) -> QueryResult:
        """Run ``sql`` wrapped so that at most ``limit`` rows come back.

        Raises:
            SQLValidationError: If the query is not a single statement.
            QueryExecutionError: If the engine rejects the query.
        """
        query = validate_read_query(sql)
        cap = settings.datasets.query_data_limit
        if limit is not None:
            cap = max(0, min(int(limit), cap))
        try:
            # Newlines keep a trailing line comment from swallowing the wrapper
            return await self._engine.query_raw(f"SELECT * FROM (\n{query}\n) AS q LIMIT {cap}")
        except SQLAlchemyError as exc:
            await self._session.rollback()
            raise QueryExecutionError(error_message(exc), details={"sql": query}) from exc

    async def query_data(self, sql: str, limit: Optional[int] = None) -> List[List[str]]:
        """Rows of ``sql`` as strings (``NULL`` for nulls), capped at ``QUERY_DATA_LIMIT``."""
        result = await self.run_query(sql, limit)
        return [[stringify(value) for value in row] for row in result.as_lists()]

    async def apply_transformation(self, dataset_id: int, sql: str) -> TransformationResult:
        """Materialize ``sql`` as the dataset's next version.

        Failures are returned in the result instead of raised.
        """
        try:
            version = await self._versions.create_version(dataset_id, sql)
        except SmartTransformationsError as exc:
            logger.warning("[Transformations] Dataset {} transformation failed: {}", dataset_id, exc.message)
            return TransformationResult(success=False, error=exc.message)
        except SQLAlchemyError as exc:
            await self._session.rollback()
            logger.warning("[Transformations] Dataset {} transformation failed: {}", dataset_id, exc)
            return TransformationResult(success=False, error=error_message(exc))

        return TransformationResult(success=True, new_table_name=version.table_name, version=version.version)
