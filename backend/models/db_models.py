"""SQLAlchemy ORM models for the metadata tables.

This module defines the database schema for:
- DatasetRecord: registered datasets and their base table
- DatasetVersionRecord: one row per materialized version table
- ChartRecord: charts and their backing tables
- MessageRecord: conversation history per dataset

Physical dataset, version and chart tables are not ORM models; they are
created from queries at runtime by services/engine.py.
"""
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String, Text, UniqueConstraint, func

from db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DatasetRecord(Base):
    """A registered dataset.

    Attributes:
        id: Primary key.
        slug: URL-safe unique identifier.
        name: Unique display name.
        table_name: Physical base table holding the uploaded rows.
        columns: Column names of the base table (without the ordering column).
        filename: Source file name (or the blank dataset name).
        size: Source file size in bytes.
        started_blank: True when the dataset was created empty.
    """

    __tablename__ = "datasets"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    slug = Column(String, nullable=False, unique=True, index=True)
    name = Column(String, nullable=False, unique=True)
    table_name = Column(String, nullable=False, unique=True)
    columns = Column(JSON, nullable=False, default=list)
    filename = Column(String, nullable=False)
    size = Column(Integer, nullable=False, default=0)
    started_blank = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DatasetVersionRecord(Base):
    """An immutable snapshot of a dataset produced by one transformation."""

    __tablename__ = "dataset_versions"
    __table_args__ = (UniqueConstraint("dataset_id", "version", name="uq_dataset_versions_dataset_version"),)
    __mapper_args__ = {"eager_defaults": True}

    table_name = Column(String, primary_key=True)
    columns = Column(JSON, nullable=False, default=list)
    version = Column(Integer, nullable=False)
    dataset_id = Column(Integer, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class ChartRecord(Base):
    """A chart backed by its own materialized table.

    ``table_name`` is empty until materialization succeeds.
    """

    __tablename__ = "dataset_charts"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(Integer, primary_key=True, autoincrement=True)
    dataset_id = Column(Integer, nullable=False, index=True)
    title = Column(String, nullable=False)
    sql = Column(Text, nullable=False)
    chart_type = Column(String, nullable=False)
    chart_arguments = Column(JSON, nullable=False, default=dict)
    is_saved = Column(Boolean, nullable=False, default=False)
    table_name = Column(String, nullable=False, default="")
    table_columns = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class MessageRecord(Base):
    """A conversation turn, unique per (id, dataset_id)."""

    __tablename__ = "messages"
    __mapper_args__ = {"eager_defaults": True}

    id = Column(String, primary_key=True)
    dataset_id = Column(Integer, primary_key=True, autoincrement=False, index=True)
    role = Column(String, nullable=False)
    metadata_ = Column("metadata", JSON, nullable=False, default=dict)
    parts = Column(JSON, nullable=False, default=list)
    # Microsecond precision keeps turns in order within the same second
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
