"""Tests for the versioned dataset store."""
import pytest

from conftest import SALES_HEADERS, SALES_ROWS
from exceptions import MaterializationError, NotFoundError, SQLValidationError
from models.dataset import ORDERING_COLUMN
from services.datasets import DatasetRegistry
from services.engine import SQLEngine
from services.reader import DatasetReader
from services.versions import VersionStore


@pytest.fixture()
async def dataset(session):
    return await DatasetRegistry(session).create_dataset("sales.csv", SALES_HEADERS, SALES_ROWS, 64)


async def test_new_dataset_has_identity_version(session, dataset):
    versions = await VersionStore(session).list_versions(dataset.id)

    assert [v.version for v in versions] == [1]
    assert versions[0].table_name == f"{dataset.table_name}___v1"
    assert set(versions[0].columns) == {ORDERING_COLUMN, "region", "amount"}


async def test_versions_append_and_latest_follows(session, dataset):
    store = VersionStore(session)
    for _ in range(3):
        await store.create_version(dataset.id, f"SELECT region, amount FROM {dataset.table_name}")

    latest = await store.latest_schema(dataset.id)
    versions = await store.list_versions(dataset.id)

    assert [v.version for v in versions] == [1, 2, 3, 4]
    assert latest.table_name == f"{dataset.table_name}___v4"
    assert latest.version == 4


async def test_ordering_column_is_regenerated(session, dataset):
    store = VersionStore(session)
    version = await store.create_version(
        dataset.id, f"SELECT region, amount FROM {dataset.table_name} WHERE region <> 'north' ORDER BY region"
    )

    page = await DatasetReader(session).read_page(dataset.id, version=version.version)

    assert [row[ORDERING_COLUMN] for row in page.rows] == [1, 2]
    assert [row["region"] for row in page.rows] == ["east", "south"]


async def test_zero_row_transformation_keeps_columns(session, dataset):
    store = VersionStore(session)
    version = await store.create_version(dataset.id, f"SELECT region FROM {dataset.table_name} WHERE 1 = 0")

    assert set(version.columns) == {"region", ORDERING_COLUMN}
    page = await DatasetReader(session).read_page(dataset.id)
    assert page.rows == []
    assert page.total_pages == 0


async def test_failed_materialization_leaves_nothing(session, dataset):
    store = VersionStore(session)

    with pytest.raises(MaterializationError):
        await store.create_version(dataset.id, f"SELECT missing_column FROM {dataset.table_name}")

    assert [v.version for v in await store.list_versions(dataset.id)] == [1]
    assert not await SQLEngine(session).table_exists(f"{dataset.table_name}___v2")


async def test_rejects_multiple_statements(session, dataset):
    store = VersionStore(session)

    with pytest.raises(SQLValidationError):
        await store.create_version(dataset.id, f"SELECT * FROM {dataset.table_name};")
    with pytest.raises(SQLValidationError):
        await store.create_version(dataset.id, f"SELECT 1; DROP TABLE {dataset.table_name}")


async def test_rejects_data_modifying_queries(session, dataset):
    store = VersionStore(session)

    table = dataset.table_name
    for sql in (f"DELETE FROM {table}", f"WITH d AS (DELETE FROM {table} RETURNING *) SELECT * FROM d"):
        with pytest.raises(SQLValidationError):
            await store.create_version(dataset.id, sql)

    assert [v.version for v in await store.list_versions(dataset.id)] == [1]
    assert await SQLEngine(session).count_rows(dataset.table_name) == 3


async def test_reset_to_version_drops_newer_tables(session, dataset):
    store = VersionStore(session)
    engine = SQLEngine(session)
    for _ in range(3):
        await store.create_version(dataset.id, f"SELECT region, amount FROM {dataset.table_name}")

    dropped = await store.reset_to_version(dataset.id, 2)

    assert dropped == [f"{dataset.table_name}___v4", f"{dataset.table_name}___v3"]
    assert [v.version for v in await store.list_versions(dataset.id)] == [1, 2]
    assert await engine.table_exists(f"{dataset.table_name}___v2")
    assert not await engine.table_exists(f"{dataset.table_name}___v3")
    assert (await store.latest_schema(dataset.id)).version == 2

    # numbering continues after the surviving maximum
    version = await store.create_version(dataset.id, f"SELECT region FROM {dataset.table_name}")
    assert version.version == 3


async def test_reset_to_zero_falls_back_to_base_table(session, dataset):
    store = VersionStore(session)

    await store.reset_to_version(dataset.id, 0)

    latest = await store.latest_schema(dataset.id)
    assert latest.table_name == dataset.table_name
    assert latest.version == 0


async def test_reset_to_unknown_version(session, dataset):
    with pytest.raises(NotFoundError):
        await VersionStore(session).reset_to_version(dataset.id, 5)


async def test_schema_at_version(session, dataset):
    store = VersionStore(session)

    assert (await store.schema_at_version(dataset.id, 0)).table_name == dataset.table_name
    assert (await store.schema_at_version(dataset.id, 1)).table_name == f"{dataset.table_name}___v1"
    with pytest.raises(NotFoundError):
        await store.schema_at_version(dataset.id, 9)
    with pytest.raises(NotFoundError):
        await store.latest_schema(12345)


async def test_sales_scenario(session, dataset):
    store = VersionStore(session)
    reader = DatasetReader(session)

    await store.create_version(
        dataset.id, f"SELECT region, CAST(amount AS INTEGER) * 2 AS amount FROM {dataset.table_name}"
    )
    doubled = await reader.read_page(dataset.id)
    assert doubled.version == 2
    assert [row["amount"] for row in doubled.rows] == [20, 40, 60]

    await store.reset_to_version(dataset.id, 1)
    original = await reader.read_page(dataset.id)
    assert original.version == 1
    assert [row["amount"] for row in original.rows] == ["10", "20", "30"]
