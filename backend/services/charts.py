"""Chart materialization and the saved/unsaved chart lifecycle.

A chart owns a table ``chart_{id}_ds_{dataset_id}`` created eagerly from its
query. Chart tables are independent of version lineage: resetting a dataset
to an older version never touches them.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import LimitReachedError, MaterializationError, SQLValidationError
from models.dataset import Chart, DatasetPage, MaterializedChart
from models.db_models import ChartRecord
from repositories.chart import ChartRepository
from repositories.dataset import DatasetRepository
from services.engine import SQLEngine, error_message, validate_read_query
from services.naming import chart_table_name
from services.reader import DatasetReader


class ChartService:
    """Creates, saves and deletes charts and their backing tables."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._engine = SQLEngine(session)
        self._charts = ChartRepository(session)
        self._datasets = DatasetRepository(session)

    async def create_chart(
        self,
        dataset_id: int,
        title: str,
        sql: str,
        chart_type: str,
        chart_arguments: Optional[Dict[str, Any]] = None,
    ) -> MaterializedChart:
        """Insert an unsaved chart and materialize its table.

        The chart row is committed first to obtain its id, which names the
        table. If materialization then fails the row is deleted again.

        Raises:
            NotFoundError: If the dataset does not exist.
            SQLValidationError: If the query is not a single statement.
            MaterializationError: If the engine rejects the query.
        """
        query = validate_read_query(sql)
        await self._datasets.get(dataset_id)

        record = await self._charts.add(
            ChartRecord(
                dataset_id=dataset_id,
                title=title,
                sql=query,
                chart_type=chart_type,
                chart_arguments=chart_arguments or {},
                is_saved=False,
            )
        )
        await self._session.commit()
        chart_id = record.id
        table_name = chart_table_name(chart_id, dataset_id)

        try:
            columns = await self._engine.materialize(table_name, query)
            record.table_name = table_name
            record.table_columns = columns
            await self._session.flush()
            await self._session.commit()
        except SQLAlchemyError as exc:
            await self._session.rollback()
            await self._discard(chart_id)
            message = error_message(exc)
            logger.warning("[Charts] Materialization of {} failed: {}", table_name, message)
            raise MaterializationError(message, details={"chart_id": chart_id, "sql": query}) from exc

        logger.info("[Charts] Created chart {} for dataset {} as {}", chart_id, dataset_id, table_name)
        return MaterializedChart(id=chart_id, table_name=table_name, columns=columns)

    async def _discard(self, chart_id: int) -> None:
        record = await self._charts.get(chart_id)
        await self._charts.delete(record)
        await self._session.commit()

    async def get_chart(self, chart_id: int) -> Chart:
        return Chart.from_record(await self._charts.get(chart_id))

    async def list_saved_charts(self, dataset_id: int) -> List[Chart]:
        await self._datasets.get(dataset_id)
        records = await self._charts.list_for_dataset(dataset_id, saved_only=True)
        return [Chart.from_record(record) for record in records]

    async def save_chart(self, chart_id: int) -> Chart:
        """Mark a chart as saved.

        Raises:
            NotFoundError: If the chart does not exist.
            LimitReachedError: If the dataset already has ``MAX_SAVED_CHARTS`` saved charts.
        """
        record = await self._charts.get(chart_id)
        if record.is_saved:
            return Chart.from_record(record)

        limit = settings.datasets.max_saved_charts
        if await self._charts.count_saved(record.dataset_id) >= limit:
            raise LimitReachedError(
                f"Dataset {record.dataset_id} already has {limit} saved charts",
                details={"dataset_id": record.dataset_id, "limit": limit},
            )

        record.is_saved = True
        await self._session.flush()
        await self._session.commit()
        logger.info("[Charts] Saved chart {}", chart_id)
        return Chart.from_record(record)

    async def unsave_chart(self, chart_id: int) -> Chart:
        record = await self._charts.get(chart_id)
        record.is_saved = False
        await self._session.flush()
        await self._session.commit()
        return Chart.from_record(record)

    async def read_chart_page(self, chart_id: int, page: int = 1, page_size: Optional[int] = None) -> DatasetPage:
        """Read one page of a chart's backing table.

        Raises:
            NotFoundError: If the chart does not exist.
            SQLValidationError: If the chart was never materialized.
        """
        record = await self._charts.get(chart_id)
        if not record.table_name:
            raise SQLValidationError(f"Chart {chart_id} has no data table")
        return await DatasetReader(self._session).read_table_page(record.table_name, page, page_size)

    async def delete_chart(self, chart_id: int) -> None:
        """Drop a chart's table and delete its row."""
        record = await self._charts.get(chart_id)
        try:
            if record.table_name:
                await self._engine.drop_table(record.table_name)
            await self._charts.delete(record)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        logger.info("[Charts] Deleted chart {}", chart_id)

    async def delete_for_dataset(self, dataset_id: int) -> List[str]:
        """Drop every chart table and row of a dataset without committing."""
        dropped = []
        for record in await self._charts.list_for_dataset(dataset_id):
            if record.table_name:
                await self._engine.drop_table(record.table_name)
                dropped.append(record.table_name)
            await self._charts.delete(record)
        return dropped
