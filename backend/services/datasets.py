"""Dataset registry.

Creates datasets from uploaded CSV files or blank, lists and renames them, and
deletes them together with everything they own. Creation and deletion each
run as one unit of work on the session.
"""
from __future__ import annotations

import asyncio
import io
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import pandas as pd
from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from exceptions import NameCollisionError, SQLValidationError
from models.dataset import Dataset
from models.db_models import DatasetRecord
from repositories.dataset import DatasetRepository
from repositories.message import MessageRepository
from services.charts import ChartService
from services.engine import SQLEngine
from services.naming import (
    blank_dataset_name,
    generate_column_names,
    generate_table_name,
    generate_unique_name,
    generate_unique_slug,
)
from services.versions import VersionStore


@dataclass
class CSVData:
    """Parsed contents of an uploaded CSV file."""
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


def parse_csv(content: bytes) -> CSVData:
    """Parse CSV bytes into headers and string rows.

    Every value is read as text; empty cells stay empty strings. Header
    cells are kept as written, duplicates and blanks included; column names
    are derived from them later.

    Raises:
        SQLValidationError: If the file is not valid CSV.
    """
    if not content.strip():
        return CSVData()
    try:
        df = pd.read_csv(io.BytesIO(content), header=None, dtype=str, keep_default_na=False)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise SQLValidationError(f"Could not parse CSV file: {exc}")
    values = df.fillna("").values.tolist()
    if not values:
        return CSVData()
    return CSVData(headers=[str(cell) for cell in values[0]], rows=values[1:])


def validate_csv_data(data: CSVData) -> Optional[str]:
    """Return an error message for unusable CSV data, None when it is valid."""
    max_rows = settings.datasets.max_csv_rows
    if not data.headers:
        return "CSV file contains no headers"
    if not data.rows:
        return "CSV file contains no rows"
    if len(data.rows) > max_rows:
        return f"CSV file contains too many rows (max is {max_rows})"
    return None


def _normalize_row(row: Sequence[Any], width: int) -> List[str]:
    values = ["" if value is None else str(value) for value in list(row)[:width]]
    return values + [""] * (width - len(values))


class DatasetRegistry:
    """Creates, looks up, renames and deletes datasets."""

    def __init__(self, session: AsyncSession):
        self._session = session
        self._engine = SQLEngine(session)
        self._datasets = DatasetRepository(session)
        self._versions = VersionStore(session)

    async def create_dataset(self, filename: str, headers: Sequence[str], rows: Sequence[Sequence[Any]], size: int) -> Dataset:
        """Create a dataset from tabular data.

        Creates the base table, loads the rows in throttled batches, registers
        the dataset under a unique name and slug, and materializes version 1
        as an identity snapshot of the base table. All of it is committed
        together or not at all.

        Args:
            filename: Source file name; seeds the table name, name and slug.
            headers: Column headers.
            rows: Data rows, one value per header.
            size: Source size in bytes.

        Returns:
            The registered Dataset.

        Raises:
            NameCollisionError: If the generated table already exists or no
                unique name or slug could be found.
            MaterializationError: If the initial version cannot be created.
        """
        columns = generate_column_names(headers)
        table_name = generate_table_name(filename)
        if await self._engine.table_exists(table_name):
            raise NameCollisionError(f"Table {table_name} already exists", details={"table_name": table_name})

        try:
            await self._engine.create_base_table(table_name, columns)
            await self._load_rows(table_name, columns, rows)
            record = await self._register(
                filename,
                lambda name, slug: DatasetRecord(
                    slug=slug,
                    name=name,
                    table_name=table_name,
                    columns=columns,
                    filename=filename,
                    size=size,
                    started_blank=False,
                ),
            )
            await self._versions.create_version(record.id, f"SELECT * FROM {table_name}", commit=False)
            dataset = Dataset.from_record(record)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("[Registry] Created dataset {} ({}) with {} rows", dataset.id, table_name, len(rows))
        return dataset

    async def create_blank_dataset(self) -> Dataset:
        """Create an empty dataset named ``Blank N``.

        The base table carries only the ordering column and no version is
        created until the first transformation.
        """
        name = blank_dataset_name(await self._datasets.count_blank())
        table_name = generate_table_name(name)

        try:
            await self._engine.create_base_table(table_name, [])
            record = await self._register(
                name,
                lambda unique_name, slug: DatasetRecord(
                    slug=slug,
                    name=unique_name,
                    table_name=table_name,
                    columns=[],
                    filename=unique_name,
                    size=0,
                    started_blank=True,
                ),
            )
            dataset = Dataset.from_record(record)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("[Registry] Created blank dataset {} ({})", dataset.id, table_name)
        return dataset

    async def _load_rows(self, table_name: str, columns: List[str], rows: Sequence[Sequence[Any]]) -> None:
        batch_size = settings.datasets.insert_batch_size
        delay = settings.datasets.insert_batch_delay
        for start in range(0, len(rows), batch_size):
            if start and delay > 0:
                await asyncio.sleep(delay)
            batch = [_normalize_row(row, len(columns)) for row in rows[start:start + batch_size]]
            await self._engine.insert_rows(table_name, columns, batch)

    async def _register(self, source_name: str, build) -> DatasetRecord:
        """Insert a dataset row under a fresh unique name and slug.

        Each attempt runs in a savepoint; a unique violation (another request
        took the name between probe and insert) retries with new candidates.
        """
        attempts = settings.datasets.name_attempts
        for _ in range(attempts):
            name = await generate_unique_name(source_name, self._datasets.name_exists)
            slug = await generate_unique_slug(name, self._datasets.slug_exists)
            try:
                async with self._session.begin_nested():
                    return await self._datasets.add(build(name, slug))
            except IntegrityError:
                logger.warning("[Registry] Name {!r} or slug {!r} taken concurrently, retrying", name, slug)
        raise NameCollisionError(f"Failed to register dataset after {attempts} attempts")

    async def list_datasets(self) -> List[Dataset]:
        return [Dataset.from_record(record) for record in await self._datasets.list_all()]

    async def get_dataset(self, dataset_id: int) -> Dataset:
        return Dataset.from_record(await self._datasets.get(dataset_id))

    async def get_dataset_by_slug(self, slug: str) -> Dataset:
        return Dataset.from_record(await self._datasets.get_by_slug(slug))

    async def rename_dataset(self, dataset_id: int, new_name: str) -> Dataset:
        """Rename a dataset and give it a slug matching the new name.

        Raises:
            NotFoundError: If the dataset does not exist.
            SQLValidationError: If the name is blank.
            NameCollisionError: If another dataset already has this name.
        """
        name = " ".join((new_name or "").split())
        if not name:
            raise SQLValidationError("Dataset name must not be empty")

        record = await self._datasets.get(dataset_id)
        if name == record.name:
            return Dataset.from_record(record)
        if await self._datasets.name_exists(name):
            raise NameCollisionError(f"A dataset named {name!r} already exists", details={"name": name})

        current_slug = record.slug

        async def slug_taken(slug: str) -> bool:
            return slug != current_slug and await self._datasets.slug_exists(slug)

        try:
            record.slug = await generate_unique_slug(name, slug_taken)
            record.name = name
            await self._session.flush()
            dataset = Dataset.from_record(record)
            await self._session.commit()
        except IntegrityError as exc:
            await self._session.rollback()
            raise NameCollisionError(f"A dataset named {name!r} already exists", details={"name": name}) from exc

        logger.info("[Registry] Renamed dataset {} to {!r} ({})", dataset_id, name, dataset.slug)
        return dataset

    async def delete_dataset(self, dataset_id: int) -> None:
        """Delete a dataset with its messages, versions and charts.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        record = await self._datasets.get(dataset_id)
        table_name = record.table_name
        try:
            await MessageRepository(self._session).delete_for_dataset(dataset_id)
            versions = await self._versions.drop_all(dataset_id)
            charts = await ChartService(self._session).delete_for_dataset(dataset_id)
            await self._engine.drop_table(table_name)
            await self._datasets.delete(record)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info(
            "[Registry] Deleted dataset {} ({}, {} versions, {} chart tables)",
            dataset_id, table_name, len(versions), len(charts),
        )
