"""Repository for ``dataset_versions`` rows."""
from __future__ import annotations

from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.db_models import DatasetVersionRecord


class VersionRepository:
    """Metadata rows of materialized dataset versions."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for_dataset(self, dataset_id: int) -> List[DatasetVersionRecord]:
        """All versions of a dataset, oldest first."""
        result = await self._session.execute(
            select(DatasetVersionRecord)
            .where(DatasetVersionRecord.dataset_id == dataset_id)
            .order_by(DatasetVersionRecord.version)
        )
        return list(result.scalars().all())

    async def latest(self, dataset_id: int) -> Optional[DatasetVersionRecord]:
        result = await self._session.execute(
            select(DatasetVersionRecord)
            .where(DatasetVersionRecord.dataset_id == dataset_id)
            .order_by(DatasetVersionRecord.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def last_version_number(self, dataset_id: int) -> int:
        """Highest version number of a dataset, 0 when it has none."""
        result = await self._session.execute(
            select(func.max(DatasetVersionRecord.version)).where(DatasetVersionRecord.dataset_id == dataset_id)
        )
        return result.scalar_one_or_none() or 0

    async def get(self, dataset_id: int, version: int) -> Optional[DatasetVersionRecord]:
        result = await self._session.execute(
            select(DatasetVersionRecord).where(
                DatasetVersionRecord.dataset_id == dataset_id,
                DatasetVersionRecord.version == version,
            )
        )
        return result.scalar_one_or_none()

    async def newer_than(self, dataset_id: int, version: int) -> List[DatasetVersionRecord]:
        result = await self._session.execute(
            select(DatasetVersionRecord)
            .where(
                DatasetVersionRecord.dataset_id == dataset_id,
                DatasetVersionRecord.version > version,
            )
            .order_by(DatasetVersionRecord.version.desc())
        )
        return list(result.scalars().all())

    async def add(self, record: DatasetVersionRecord) -> DatasetVersionRecord:
        self._session.add(record)
        await self._session.flush()
        return record

    async def delete(self, record: DatasetVersionRecord) -> None:
        await self._session.delete(record)
        await self._session.flush()

    async def delete_for_dataset(self, dataset_id: int) -> None:
        await self._session.execute(
            delete(DatasetVersionRecord).where(DatasetVersionRecord.dataset_id == dataset_id)
        )
