"""Repository package for data access patterns.

This package provides repository implementations following the Repository pattern,
abstracting data access from business logic. Repositories flush but never commit.
"""
from repositories.chart import ChartRepository
from repositories.dataset import DatasetRepository
from repositories.message import MessageRepository
from repositories.version import VersionRepository

__all__ = ["ChartRepository", "DatasetRepository", "MessageRepository", "VersionRepository"]
