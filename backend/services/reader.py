"""Paginated reads over dataset versions and chart tables."""
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import SQLValidationError
from models.dataset import ORDERING_COLUMN, DatasetPage
from services.engine import SQLEngine
from services.versions import VersionSelector, VersionStore


def _ordering_first(columns: Sequence[str]) -> List[str]:
    return [ORDERING_COLUMN] + [name for name in columns if name != ORDERING_COLUMN]


class DatasetReader:
    """Reads pages of rows ordered by the synthetic ordering column."""

    def __init__(self, session: AsyncSession):
        self._engine = SQLEngine(session)
        self._versions = VersionStore(session)

    async def read_page(
        self,
        dataset_id: int,
        page: int = 1,
        version: VersionSelector = "latest",
        page_size: Optional[int] = None,
    ) -> DatasetPage:
        """Read one 1-based page of a dataset version.

        Args:
            dataset_id: Dataset to read.
            page: Page number, starting at 1. Pages past the end are empty.
            version: ``"latest"`` or an explicit version number (0 is the base table).
            page_size: Rows per page, defaults to ``PAGE_SIZE``.

        Raises:
            NotFoundError: If the dataset or version does not exist.
            SQLValidationError: If page or page_size is below 1.
        """
        schema = await self._versions.resolve_schema(dataset_id, version)
        result = await self.read_table_page(schema.table_name, page, page_size)
        result.version = schema.version
        return result

    async def read_table_page(self, table_name: str, page: int = 1, page_size: Optional[int] = None) -> DatasetPage:
        """Read one page of any table carrying the ordering column."""
        size = settings.datasets.page_size if page_size is None else page_size
        if page < 1:
            raise SQLValidationError("Page must be 1 or greater")
        if size < 1:
            raise SQLValidationError("Page size must be 1 or greater")

        columns = _ordering_first(await self._engine.get_columns(table_name))
        total_rows = await self._engine.count_rows(table_name)
        result = await self._engine.fetch_page(table_name, columns, limit=size, offset=(page - 1) * size)

        return DatasetPage(
            rows=result.rows,
            columns=columns,
            page=page,
            page_size=size,
            total_rows=total_rows,
            total_pages=math.ceil(total_rows / size),
            table_name=table_name,
        )

    async def sample(self, dataset_id: int, n: Optional[int] = None) -> List[Dict[str, Any]]:
        """First ``n`` rows of the latest version (``SAMPLE_SIZE`` by default)."""
        size = settings.datasets.sample_size if n is None else n
        if size < 1:
            return []
        return (await self.read_page(dataset_id, page=1, page_size=size)).rows
