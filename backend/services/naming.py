"""Identifier generation for datasets.

Produces the three names a dataset is known by:
- a physical table name (random suffix, no collision check needed)
- a display name (probed against the registry)
- a URL slug (probed against the registry)

Also provides the helpers used wherever identifiers are interpolated into
SQL, since identifiers cannot be bound as parameters.
"""
from __future__ import annotations

import re
import secrets
from pathlib import PurePath
from typing import Awaitable, Callable, Iterable, List

from config import settings
from exceptions import NameCollisionError, SQLValidationError
from models.dataset import ORDERING_COLUMN

SUFFIX_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
TABLE_SUFFIX_LENGTH = 8
NAME_SUFFIX_LENGTH = 4

# PostgreSQL truncates longer identifiers to 63 bytes
MAX_IDENTIFIER_LENGTH = 63
# stem + "__" + suffix + "___v" + nine version digits stays within the limit
TABLE_STEM_MAX_LENGTH = 40
COLUMN_STEM_MAX_LENGTH = 56

_TABLE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")

NameProbe = Callable[[str], Awaitable[bool]]


def random_suffix(length: int) -> str:
    return "".join(secrets.choice(SUFFIX_ALPHABET) for _ in range(length))


def _strip_extension(filename: str) -> str:
    name = filename.strip()
    suffix = PurePath(name).suffix
    if suffix and suffix.lower() in (".csv", ".tsv", ".txt"):
        name = name[: -len(suffix)]
    return name.strip()


def _identifier_stem(source: str, fallback: str, max_length: int) -> str:
    stem = re.sub(r"[^a-z0-9]+", "_", source.lower()).strip("_")
    if not stem:
        stem = fallback
    if stem[0].isdigit():
        stem = f"_{stem}"
    return stem[:max_length].rstrip("_")


def generate_table_name(filename: str) -> str:
    """Build a physical table name from a file name.

    ``"Sales Q1.csv"`` becomes ``"sales_q1__<8 random chars>"``.
    """
    stem = _identifier_stem(_strip_extension(filename), "dataset", TABLE_STEM_MAX_LENGTH)
    return f"{stem}__{random_suffix(TABLE_SUFFIX_LENGTH)}"


def generate_column_names(headers: Iterable[str]) -> List[str]:
    """Turn CSV headers into unique column identifiers.

    Stems never start or end with an underscore (other than the leading-digit
    escape), so the ordering column name cannot be produced.
    """
    columns: List[str] = []
    seen = {ORDERING_COLUMN}
    for position, header in enumerate(headers, start=1):
        base = _identifier_stem(str(header), f"column_{position}", COLUMN_STEM_MAX_LENGTH)
        candidate = base
        counter = 2
        while candidate in seen:
            candidate = f"{base}_{counter}"
            counter += 1
        seen.add(candidate)
        columns.append(candidate)
    return columns


def display_name_from_filename(filename: str) -> str:
    name = _strip_extension(filename).lower()
    name = re.sub(r"[-_]+", " ", name)
    name = re.sub(r"\s+", " ", name).strip()
    return name[:1].upper() + name[1:]


def slug_from_name(name: str) -> str:
    slug = _strip_extension(name.lower())
    return re.sub(r"[^a-z0-9]+", "-", slug).strip("-")


async def _probe_unique(candidate: str, is_taken: NameProbe, separator: str, label: str) -> str:
    for _ in range(settings.datasets.name_attempts):
        if not await is_taken(candidate):
            return candidate
        candidate = f"{candidate}{separator}{random_suffix(NAME_SUFFIX_LENGTH)}"
    raise NameCollisionError(
        f"Failed to generate a unique {label} after {settings.datasets.name_attempts} attempts",
        details={"last_candidate": candidate},
    )


async def generate_unique_name(filename: str, is_taken: NameProbe) -> str:
    """Display name for ``filename`` that ``is_taken`` reports as free.

    Raises:
        NameCollisionError: If every attempt collides.
    """
    name = display_name_from_filename(filename) or "Dataset"
    return await _probe_unique(name, is_taken, " ", "dataset name")


async def generate_unique_slug(name: str, is_taken: NameProbe) -> str:
    """URL slug for ``name`` that ``is_taken`` reports as free.

    Raises:
        NameCollisionError: If every attempt collides.
    """
    slug = slug_from_name(name) or "dataset"
    return await _probe_unique(slug, is_taken, "-", "slug")


def blank_dataset_name(existing_blank_count: int) -> str:
    return f"Blank {existing_blank_count + 1}"


def ensure_table_name(name: str) -> str:
    """Validate a physical table name before it is interpolated into SQL.

    Raises:
        SQLValidationError: If the name is not a plain lowercase identifier
            or is longer than the engine keeps.
    """
    if not name or not _TABLE_NAME_RE.match(name):
        raise SQLValidationError(f"Invalid table name: {name!r}")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise SQLValidationError(f"Table name is longer than {MAX_IDENTIFIER_LENGTH} characters: {name!r}")
    return name


def quote_identifier(name: str) -> str:
    """Double-quote an identifier (works for PostgreSQL and SQLite)."""
    return '"' + str(name).replace('"', '""') + '"'


def version_table_name(base_table_name: str, version: int) -> str:
    return f"{base_table_name}___v{version}"


def chart_table_name(chart_id: int, dataset_id: int) -> str:
    return f"chart_{chart_id}_ds_{dataset_id}"
