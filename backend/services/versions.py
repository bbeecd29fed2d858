"""Versioned dataset store.

Every transformation of a dataset is materialized as a new physical table
``{base_table}___v{n}`` with a fresh ``___index___`` ordering column, plus a
``dataset_versions`` row recording its columns. Versions are never modified;
rolling back drops every version newer than the target.

The dataset's own base table stands in as version 0 while no version exists.
"""
from __future__ import annotations

from typing import List, Union

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import MaterializationError, NotFoundError, SQLValidationError
from models.dataset import DatasetVersion, TableSchema
from models.db_models import DatasetVersionRecord
from repositories.dataset import DatasetRepository
from repositories.version import VersionRepository
from services.engine import SQLEngine, error_message, validate_read_query
from services.naming import version_table_name

VersionSelector = Union[int, str, None]


class VersionStore:
    """Creates, lists and rolls back dataset versions.

    Attributes:
        _session: Session whose transaction each operation runs in.
        _engine: Engine adapter bound to the same session.
    """

    def __init__(self, session: AsyncSession):
        self._session = session
        self._engine = SQLEngine(session)
        self._datasets = DatasetRepository(session)
        self._versions = VersionRepository(session)

    async def list_versions(self, dataset_id: int) -> List[DatasetVersion]:
        """All versions of a dataset ordered by version number.

        Raises:
            NotFoundError: If the dataset does not exist.
        """
        await self._datasets.get(dataset_id)
        records = await self._versions.list_for_dataset(dataset_id)
        return [DatasetVersion.from_record(record) for record in records]

    async def latest_schema(self, dataset_id: int) -> TableSchema:
        """Table and columns of the newest version, or of the base table."""
        dataset = await self._datasets.get(dataset_id)
        latest = await self._versions.latest(dataset_id)
        if latest is None:
            return TableSchema(table_name=dataset.table_name, columns=list(dataset.columns or []), version=0)
        return TableSchema(table_name=latest.table_name, columns=list(latest.columns or []), version=latest.version)

    async def schema_at_version(self, dataset_id: int, version: int) -> TableSchema:
        """Table and columns of one version (0 is the base table).

        Raises:
            NotFoundError: If the dataset or the version does not exist.
        """
        dataset = await self._datasets.get(dataset_id)
        if version == 0:
            return TableSchema(table_name=dataset.table_name, columns=list(dataset.columns or []), version=0)

        record = await self._versions.get(dataset_id, version)
        if record is None:
            raise NotFoundError("Version", f"{version} of dataset {dataset_id}")
        return TableSchema(table_name=record.table_name, columns=list(record.columns or []), version=record.version)

    async def resolve_schema(self, dataset_id: int, version: VersionSelector = "latest") -> TableSchema:
        """Schema for ``"latest"``/``None`` or an explicit version number."""
        if version is None or version == "latest":
            return await self.latest_schema(dataset_id)
        try:
            number = int(version)
        except (TypeError, ValueError):
            raise SQLValidationError(f"Invalid version: {version!r}")
        return await self.schema_at_version(dataset_id, number)

    async def create_version(self, dataset_id: int, transformation_query: str, commit: bool = True) -> DatasetVersion:
        """Materialize ``transformation_query`` as the dataset's next version.

        The table creation, ordering column reset and metadata row form one
        unit of work: on failure nothing is left behind.

        Args:
            dataset_id: Dataset to version.
            transformation_query: A single read-only query.
            commit: Commit the unit of work; False when the caller owns it.

        Returns:
            The new DatasetVersion.

        Raises:
            NotFoundError: If the dataset does not exist.
            SQLValidationError: If the query is not a single statement.
            MaterializationError: If the engine rejects the query.
        """
        query = validate_read_query(transformation_query)
        dataset = await self._datasets.get(dataset_id)
        next_version = await self._versions.last_version_number(dataset_id) + 1
        table_name = version_table_name(dataset.table_name, next_version)

        try:
            columns = await self._engine.materialize(table_name, query)
            record = await self._versions.add(
                DatasetVersionRecord(
                    table_name=table_name,
                    columns=columns,
                    version=next_version,
                    dataset_id=dataset_id,
                )
            )
            version = DatasetVersion.from_record(record)
            if commit:
                await self._session.commit()
        except SQLAlchemyError as exc:
            if commit:
                await self._session.rollback()
            message = error_message(exc)
            logger.warning("[Versions] Materialization of {} failed: {}", table_name, message)
            raise MaterializationError(message, details={"table_name": table_name, "sql": query}) from exc
        except Exception:
            if commit:
                await self._session.rollback()
            raise

        logger.info("[Versions] Created version {} of dataset {} as {}", next_version, dataset_id, table_name)
        return version

    async def reset_to_version(self, dataset_id: int, target_version: int) -> List[str]:
        """Delete every version newer than ``target_version``.

        Charts are left untouched. Surviving versions keep their numbers.

        Returns:
            The dropped table names.

        Raises:
            NotFoundError: If the dataset or the target version does not exist.
            SQLValidationError: If the target is negative.
        """
        await self._datasets.get(dataset_id)
        if target_version < 0:
            raise SQLValidationError("Target version must be 0 or greater")
        if target_version > 0 and await self._versions.get(dataset_id, target_version) is None:
            raise NotFoundError("Version", f"{target_version} of dataset {dataset_id}")

        doomed = await self._versions.newer_than(dataset_id, target_version)
        dropped = [record.table_name for record in doomed]
        try:
            for record in doomed:
                await self._engine.drop_table(record.table_name)
                await self._versions.delete(record)
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise

        logger.info("[Versions] Reset dataset {} to version {}, dropped {}", dataset_id, target_version, dropped)
        return dropped

    async def drop_all(self, dataset_id: int) -> List[str]:
        """Drop every version table and row of a dataset without committing."""
        records = await self._versions.list_for_dataset(dataset_id)
        dropped = [record.table_name for record in records]
        for name in dropped:
            await self._engine.drop_table(name)
        await self._versions.delete_for_dataset(dataset_id)
        return dropped
