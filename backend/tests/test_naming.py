"""Tests for identifier generation."""
import re

import pytest

from exceptions import NameCollisionError, SQLValidationError
from models.dataset import ORDERING_COLUMN
from services.naming import (
    MAX_IDENTIFIER_LENGTH,
    blank_dataset_name,
    chart_table_name,
    display_name_from_filename,
    ensure_table_name,
    generate_column_names,
    generate_table_name,
    generate_unique_name,
    generate_unique_slug,
    quote_identifier,
    slug_from_name,
    version_table_name,
)


def test_table_name_from_filename():
    name = generate_table_name("Sales Q1.csv")
    assert re.fullmatch(r"sales_q1__[a-z0-9]{8}", name)


def test_table_name_escapes_leading_digit_and_empty_stem():
    assert generate_table_name("2024 report.csv").startswith("_2024_report__")
    assert generate_table_name("!!!.csv").startswith("dataset__")


def test_table_names_are_random():
    assert generate_table_name("sales.csv") != generate_table_name("sales.csv")


def test_display_name_and_slug():
    assert display_name_from_filename("my-sales_data.csv") == "My sales data"
    assert display_name_from_filename("  QUARTERLY   Report.csv") == "Quarterly report"
    assert slug_from_name("My Sales Data.csv") == "my-sales-data"
    assert slug_from_name("--Hello, World!--") == "hello-world"


def test_column_names_are_unique_identifiers():
    columns = generate_column_names(["Name", "name", "Unit Price ($)", "", "1st"])
    assert columns == ["name", "name_2", "unit_price", "column_4", "_1st"]
    assert ORDERING_COLUMN not in generate_column_names(["___index___"])


async def test_unique_name_returns_free_candidate():
    async def never_taken(candidate: str) -> bool:
        return False

    assert await generate_unique_name("sales.csv", never_taken) == "Sales"


async def test_unique_slug_appends_suffix_on_collision():
    taken = {"sales"}

    async def is_taken(candidate: str) -> bool:
        return candidate in taken

    slug = await generate_unique_slug("Sales", is_taken)
    assert re.fullmatch(r"sales-[a-z0-9]{4}", slug)


async def test_unique_name_gives_up_after_bounded_attempts():
    probes = []

    async def always_taken(candidate: str) -> bool:
        probes.append(candidate)
        return True

    with pytest.raises(NameCollisionError):
        await generate_unique_name("sales.csv", always_taken)
    assert len(probes) == 10


def test_physical_names():
    assert version_table_name("sales__abcd1234", 3) == "sales__abcd1234___v3"
    assert chart_table_name(7, 2) == "chart_7_ds_2"
    assert blank_dataset_name(0) == "Blank 1"


def test_identifier_helpers():
    assert ensure_table_name("sales__abcd1234___v2") == "sales__abcd1234___v2"
    with pytest.raises(SQLValidationError):
        ensure_table_name("sales; DROP TABLE datasets")
    assert quote_identifier('odd"name') == '"odd""name"'


def test_long_filenames_fit_identifier_limit():
    name = generate_table_name("customer_transactions_export_2024_q3_final_version_v2.csv")

    assert re.fullmatch(r"customer_transactions_export_2024_q3_fin__[a-z0-9]{8}", name)
    assert len(version_table_name(name, 999_999_999)) <= MAX_IDENTIFIER_LENGTH
    assert ensure_table_name(version_table_name(name, 1)) != name


def test_truncated_stems_do_not_end_with_underscore():
    name = generate_table_name("a" * 39 + " report.csv")
    assert name.startswith("a" * 39 + "__")


def test_long_headers_are_capped():
    columns = generate_column_names(["x" * 80, "x" * 90])
    assert columns == ["x" * 56, "x" * 56 + "_2"]
    assert all(len(c) <= MAX_IDENTIFIER_LENGTH for c in columns)


def test_overlong_table_names_are_rejected():
    with pytest.raises(SQLValidationError):
        ensure_table_name("t" * (MAX_IDENTIFIER_LENGTH + 1))
