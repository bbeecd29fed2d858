"""Domain exceptions for datasets, versions and charts.

Tool handlers turn these into ``{"success": False, "error": ...}`` results;
the HTTP layer maps them to status codes in ``main.py``.
"""
from __future__ import annotations

from typing import Any


class SmartTransformationsError(Exception):
    """Base exception for the service."""

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(self.message)


class NotFoundError(SmartTransformationsError):
    """A dataset, version or chart id/slug does not exist."""

    def __init__(self, resource: str, identifier: Any):
        super().__init__(f"{resource} '{identifier}' not found", details={"resource": resource, "id": identifier})


class NameCollisionError(SmartTransformationsError):
    """A unique name, slug or table name could not be produced."""
    pass


class SQLValidationError(SmartTransformationsError):
    """SQL or an identifier was rejected before reaching the engine."""
    pass


class MaterializationError(SmartTransformationsError):
    """The engine rejected a table-from-query materialization."""
    pass


class LimitReachedError(SmartTransformationsError):
    """A per-dataset cap (saved charts) was exceeded."""
    pass


class QueryExecutionError(SmartTransformationsError):
    """The engine rejected an ad-hoc read query."""
    pass
