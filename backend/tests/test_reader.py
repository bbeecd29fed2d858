"""Tests for paginated reads."""
import math

import pytest

from exceptions import NotFoundError, SQLValidationError
from models.dataset import ORDERING_COLUMN
from services.datasets import DatasetRegistry
from services.reader import DatasetReader

ROW_COUNT = 123


@pytest.fixture()
async def dataset(session):
    rows = [[f"item {i}", str(i)] for i in range(1, ROW_COUNT + 1)]
    return await DatasetRegistry(session).create_dataset("items.csv", ["label", "value"], rows, 2048)


async def test_pages_cover_all_rows_once(session, dataset):
    reader = DatasetReader(session)

    first = await reader.read_page(dataset.id, page=1)
    assert first.total_rows == ROW_COUNT
    assert first.total_pages == math.ceil(ROW_COUNT / 50)
    assert first.page_size == 50

    seen = []
    for page in range(1, first.total_pages + 1):
        seen.extend(row[ORDERING_COLUMN] for row in (await reader.read_page(dataset.id, page=page)).rows)

    assert seen == list(range(1, ROW_COUNT + 1))


async def test_ordering_column_comes_first(session, dataset):
    page = await DatasetReader(session).read_page(dataset.id, page_size=5)

    assert page.columns[0] == ORDERING_COLUMN
    assert list(page.rows[0].keys())[0] == ORDERING_COLUMN
    assert page.rows[0]["label"] == "item 1"


async def test_page_past_the_end_is_empty(session, dataset):
    page = await DatasetReader(session).read_page(dataset.id, page=99)

    assert page.rows == []
    assert page.total_rows == ROW_COUNT


async def test_invalid_page_arguments(session, dataset):
    reader = DatasetReader(session)

    with pytest.raises(SQLValidationError):
        await reader.read_page(dataset.id, page=0)
    with pytest.raises(SQLValidationError):
        await reader.read_page(dataset.id, page_size=0)
    with pytest.raises(SQLValidationError):
        await reader.read_page(dataset.id, version="newest")


async def test_explicit_versions(session, dataset):
    reader = DatasetReader(session)

    base = await reader.read_page(dataset.id, version=0, page_size=1)
    assert base.table_name == dataset.table_name
    assert base.version == 0

    string_version = await reader.read_page(dataset.id, version="1", page_size=1)
    assert string_version.version == 1

    with pytest.raises(NotFoundError):
        await reader.read_page(dataset.id, version=7)


async def test_sample(session, dataset):
    sample = await DatasetReader(session).sample(dataset.id, 3)

    assert [row["value"] for row in sample] == ["1", "2", "3"]
