from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from pydantic import BaseModel, Field

if TYPE_CHECKING:
    from models.db_models import ChartRecord, DatasetRecord, DatasetVersionRecord, MessageRecord


ORDERING_COLUMN = "___index___"


class Dataset(BaseModel):
    id: int
    slug: str
    name: str
    table_name: str
    columns: List[str] = Field(default_factory=list)
    filename: str
    size: int = 0
    started_blank: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: "DatasetRecord") -> "Dataset":
        return cls(
            id=record.id,
            slug=record.slug,
            name=record.name,
            table_name=record.table_name,
            columns=list(record.columns or []),
            filename=record.filename,
            size=record.size or 0,
            started_blank=bool(record.started_blank),
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


class DatasetVersion(BaseModel):
    table_name: str
    columns: List[str] = Field(default_factory=list)
    version: int
    dataset_id: int
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: "DatasetVersionRecord") -> "DatasetVersion":
        return cls(
            table_name=record.table_name,
            columns=list(record.columns or []),
            version=record.version,
            dataset_id=record.dataset_id,
            created_at=record.created_at,
        )


class TableSchema(BaseModel):
    """The physical table and column list behind a dataset version."""
    table_name: str
    columns: List[str] = Field(default_factory=list)
    version: int = 0


class ColumnInfo(BaseModel):
    name: str
    data_type: str


class DatasetPage(BaseModel):
    rows: List[Dict[str, Any]] = Field(default_factory=list)
    columns: List[str] = Field(default_factory=list)
    page: int = 1
    page_size: int = 50
    total_rows: int = 0
    total_pages: int = 0
    table_name: str
    version: int = 0


class Chart(BaseModel):
    id: int
    dataset_id: int
    title: str
    sql: str
    chart_type: str
    chart_arguments: Dict[str, Any] = Field(default_factory=dict)
    is_saved: bool = False
    table_name: str = ""
    table_columns: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: "ChartRecord") -> "Chart":
        return cls(
            id=record.id,
            dataset_id=record.dataset_id,
            title=record.title,
            sql=record.sql,
            chart_type=record.chart_type,
            chart_arguments=dict(record.chart_arguments or {}),
            is_saved=bool(record.is_saved),
            table_name=record.table_name or "",
            table_columns=list(record.table_columns or []),
            created_at=record.created_at,
        )


class MaterializedChart(BaseModel):
    """Result of creating a chart: its id and backing table."""
    id: int
    table_name: str
    columns: List[str] = Field(default_factory=list)


class Message(BaseModel):
    id: str
    role: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    parts: List[Dict[str, Any]] = Field(default_factory=list)
    dataset_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: "MessageRecord") -> "Message":
        return cls(
            id=record.id,
            role=record.role,
            metadata=dict(record.metadata_ or {}),
            parts=list(record.parts or []),
            dataset_id=record.dataset_id,
            created_at=record.created_at,
        )

    def text(self) -> str:
        """Concatenate the text parts of the message."""
        return "\n".join(
            str(part.get("text", "")) for part in self.parts if part.get("type") == "text"
        )


class TransformationResult(BaseModel):
    success: bool
    new_table_name: Optional[str] = None
    version: Optional[int] = None
    error: Optional[str] = None


class ToolCallRecord(BaseModel):
    """One tool invocation made by the agent during a chat turn."""
    id: str
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)
    result: Dict[str, Any] = Field(default_factory=dict)


class ChatResult(BaseModel):
    assistant_message: Message
    tool_calls: List[ToolCallRecord] = Field(default_factory=list)
