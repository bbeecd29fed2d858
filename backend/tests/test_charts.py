"""Tests for chart materialization and the saved chart cap."""
import pytest
from sqlalchemy import select

from conftest import SALES_HEADERS, SALES_ROWS
from exceptions import LimitReachedError, MaterializationError, NotFoundError
from models.dataset import ORDERING_COLUMN
from models.db_models import ChartRecord
from services.charts import ChartService
from services.datasets import DatasetRegistry
from services.engine import SQLEngine
from services.versions import VersionStore


@pytest.fixture()
async def dataset(session):
    return await DatasetRegistry(session).create_dataset("sales.csv", SALES_HEADERS, SALES_ROWS, 64)


async def _create(session, dataset, title="Amount by region"):
    return await ChartService(session).create_chart(
        dataset.id,
        title,
        f"SELECT region, CAST(amount AS INTEGER) AS amount FROM {dataset.table_name}",
        "lines",
        {"xAxisName": "region", "linesNames": ["amount"]},
    )


async def test_create_chart_materializes_table(session, dataset):
    chart = await _create(session, dataset)

    assert chart.table_name == f"chart_{chart.id}_ds_{dataset.id}"
    assert set(chart.columns) == {"region", "amount", ORDERING_COLUMN}

    stored = await ChartService(session).get_chart(chart.id)
    assert stored.is_saved is False
    assert stored.chart_arguments["linesNames"] == ["amount"]

    page = await ChartService(session).read_chart_page(chart.id)
    assert [row["amount"] for row in page.rows] == [10, 20, 30]


async def test_failed_chart_leaves_no_row(session, dataset):
    with pytest.raises(MaterializationError):
        await ChartService(session).create_chart(dataset.id, "Broken", "SELECT nope FROM nowhere", "lines")

    result = await session.execute(select(ChartRecord))
    assert result.scalars().all() == []


async def test_save_and_unsave(session, dataset):
    service = ChartService(session)
    chart = await _create(session, dataset)

    await service.save_chart(chart.id)
    assert [c.id for c in await service.list_saved_charts(dataset.id)] == [chart.id]

    await service.unsave_chart(chart.id)
    assert await service.list_saved_charts(dataset.id) == []


async def test_saved_chart_cap(session, dataset):
    service = ChartService(session)
    for i in range(10):
        chart = await _create(session, dataset, title=f"Chart {i}")
        await service.save_chart(chart.id)

    extra = await _create(session, dataset, title="One too many")
    with pytest.raises(LimitReachedError):
        await service.save_chart(extra.id)

    assert len(await service.list_saved_charts(dataset.id)) == 10


async def test_version_reset_keeps_charts(session, dataset):
    chart = await _create(session, dataset)
    store = VersionStore(session)
    await store.create_version(dataset.id, f"SELECT region FROM {dataset.table_name}")

    await store.reset_to_version(dataset.id, 0)

    assert (await ChartService(session).get_chart(chart.id)).table_name == chart.table_name
    assert await SQLEngine(session).table_exists(chart.table_name)


async def test_delete_chart_drops_table(session, dataset):
    service = ChartService(session)
    chart = await _create(session, dataset)

    await service.delete_chart(chart.id)

    assert not await SQLEngine(session).table_exists(chart.table_name)
    with pytest.raises(NotFoundError):
        await service.get_chart(chart.id)
