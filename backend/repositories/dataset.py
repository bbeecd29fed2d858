"""Dataset repository for metadata persistence.

This module implements the Repository pattern for the ``datasets`` table,
abstracting SQLAlchemy details from the registry service. Repositories only
flush; the calling service decides when the unit of work is committed.
"""
from __future__ import annotations

from typing import List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import NotFoundError
from models.db_models import DatasetRecord


class DatasetRepository:
    """Repository for dataset metadata rows.

    Attributes:
        _session: Database session for operations.
    """

    def __init__(self, session: AsyncSession):
        """Initialize the repository.

        Args:
            session: SQLAlchemy async session.
        """
        self._session = session

    async def get(self, dataset_id: int) -> DatasetRecord:
        """Get a dataset by ID.

        Args:
            dataset_id: Dataset primary key.

        Returns:
            DatasetRecord instance.

        Raises:
            NotFoundError: If dataset not found.
        """
        record = await self._session.get(DatasetRecord, dataset_id)
        if not record:
            raise NotFoundError("Dataset", dataset_id)
        return record

    async def get_by_slug(self, slug: str) -> DatasetRecord:
        """Get a dataset by its URL slug.

        Raises:
            NotFoundError: If no dataset has this slug.
        """
        result = await self._session.execute(select(DatasetRecord).where(DatasetRecord.slug == slug))
        record = result.scalar_one_or_none()
        if not record:
            raise NotFoundError("Dataset", slug)
        return record

    async def list_all(self) -> List[DatasetRecord]:
        result = await self._session.execute(select(DatasetRecord).order_by(DatasetRecord.created_at, DatasetRecord.id))
        return list(result.scalars().all())

    async def add(self, record: DatasetRecord) -> DatasetRecord:
        """Stage a new dataset row and flush it to obtain its id.

        Raises:
            IntegrityError: If the name, slug or table name is already taken.
        """
        self._session.add(record)
        await self._session.flush()
        return record

    async def delete(self, record: DatasetRecord) -> None:
        await self._session.delete(record)
        await self._session.flush()

    async def name_exists(self, name: str) -> bool:
        return await self._exists(DatasetRecord.name == name)

    async def slug_exists(self, slug: str) -> bool:
        return await self._exists(DatasetRecord.slug == slug)

    async def count_blank(self) -> int:
        result = await self._session.execute(
            select(func.count()).select_from(DatasetRecord).where(DatasetRecord.started_blank.is_(True))
        )
        return int(result.scalar_one())

    async def _exists(self, condition) -> bool:
        result = await self._session.execute(select(func.count()).select_from(DatasetRecord).where(condition))
        return result.scalar_one() > 0
