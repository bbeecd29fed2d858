"""Repository for ``dataset_charts`` rows."""
from __future__ import annotations

from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import NotFoundError
from models.db_models import ChartRecord


class ChartRepository:
    """Metadata rows of charts and their backing tables."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def get(self, chart_id: int) -> ChartRecord:
        """Get a chart by ID.

        Raises:
            NotFoundError: If the chart does not exist.
        """
        record = await self._session.get(ChartRecord, chart_id)
        if not record:
            raise NotFoundError("Chart", chart_id)
        return record

    async def list_for_dataset(self, dataset_id: int, saved_only: bool = False) -> List[ChartRecord]:
        query = select(ChartRecord).where(ChartRecord.dataset_id == dataset_id)
        if saved_only:
            query = query.where(ChartRecord.is_saved.is_(True))
        result = await self._session.execute(query.order_by(ChartRecord.id))
        return list(result.scalars().all())

    async def count_saved(self, dataset_id: int) -> int:
        result = await self._session.execute(
            select(func.count())
            .select_from(ChartRecord)
            .where(ChartRecord.dataset_id == dataset_id, ChartRecord.is_saved.is_(True))
        )
        return int(result.scalar_one())

    async def add(self, record: ChartRecord) -> ChartRecord:
        self._session.add(record)
        await self._session.flush()
        return record

    async def delete(self, record: ChartRecord) -> None:
        await self._session.delete(record)
        await self._session.flush()
