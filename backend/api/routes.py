"""API routes for Smart Transformations.

This module defines all REST API endpoints for:
- Dataset upload, blank creation, lookup, rename and deletion
- Paginated data reads across versions, version listing and rollback
- Conversation messages and the chat agent
- Direct tool invocation
- Chart data and the saved/unsaved chart lifecycle

Domain errors raised by the services are mapped to status codes by the
exception handlers registered in ``main.py``.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from fastapi import APIRouter, Body, Depends, File, HTTPException, UploadFile
from loguru import logger
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from db import get_session
from models.dataset import Chart, ChatResult, Dataset, DatasetPage, DatasetVersion, Message
from protocols import LLMClient, SQLGenerator
from repositories.message import MessageRepository
from services.charts import ChartService
from services.datasets import DatasetRegistry, parse_csv, validate_csv_data
from services.engine import SQLEngine
from services.llm.chat import ChatService
from services.llm.client import get_llm_client
from services.llm.sql_generator import SQLGenerationService
from services.reader import DatasetReader
from services.tools import ToolContext, get_tool_registry
from services.versions import VersionStore

router = APIRouter()


class RenameDatasetRequest(BaseModel):
    """Request body for renaming a dataset."""
    name: str


class ResetVersionRequest(BaseModel):
    """Request body for rolling a dataset back."""
    target_version: int


class ChatMessageRequest(BaseModel):
    """Request body for chat messages."""
    content: str
    model: Optional[str] = None
    message_id: Optional[str] = None


def get_chat_client() -> LLMClient:
    """LLM client dependency for the chat endpoint.

    Raises:
        HTTPException: 503 if no API key is configured.
    """
    if not settings.llm.api_key:
        raise HTTPException(status_code=503, detail="LLM provider is not configured")
    return get_llm_client()


def get_sql_generator() -> Optional[SQLGenerator]:
    """SQL generator dependency for direct tool calls, None when the LLM is not configured."""
    if not settings.llm.api_key:
        return None
    return SQLGenerationService()


@router.get("/datasets")
async def list_datasets(session: AsyncSession = Depends(get_session)) -> List[Dataset]:
    """List all datasets, oldest first."""
    return await DatasetRegistry(session).list_datasets()


@router.post("/datasets/upload", status_code=201)
async def upload_dataset(
    file: UploadFile = File(...),
    session: AsyncSession = Depends(get_session),
) -> Dataset:
    """Create a dataset from an uploaded CSV file.

    Args:
        file: CSV file with a header row and up to ``MAX_CSV_ROWS`` rows.
        session: Database session.

    Returns:
        The registered dataset.

    Raises:
        HTTPException: 400 if the file is not usable CSV.
    """
    content = await file.read()
    data = parse_csv(content)
    error = validate_csv_data(data)
    if error:
        raise HTTPException(status_code=400, detail=error)

    filename = file.filename or "dataset.csv"
    logger.info("[Upload] {} ({} bytes, {} rows)", filename, len(content), len(data.rows))
    return await DatasetRegistry(session).create_dataset(filename, data.headers, data.rows, len(content))


@router.post("/datasets/blank", status_code=201)
async def create_blank_dataset(session: AsyncSession = Depends(get_session)) -> Dataset:
    """Create an empty dataset named ``Blank N``."""
    return await DatasetRegistry(session).create_blank_dataset()


@router.get("/datasets/slug/{slug}")
async def get_dataset_by_slug(slug: str, session: AsyncSession = Depends(get_session)) -> Dataset:
    return await DatasetRegistry(session).get_dataset_by_slug(slug)


@router.get("/datasets/{dataset_id}")
async def get_dataset(dataset_id: int, session: AsyncSession = Depends(get_session)) -> Dataset:
    return await DatasetRegistry(session).get_dataset(dataset_id)


@router.patch("/datasets/{dataset_id}")
async def rename_dataset(
    dataset_id: int,
    request: RenameDatasetRequest,
    session: AsyncSession = Depends(get_session),
) -> Dataset:
    """Rename a dataset; its slug follows the new name."""
    return await DatasetRegistry(session).rename_dataset(dataset_id, request.name)


@router.delete("/datasets/{dataset_id}")
async def delete_dataset(dataset_id: int, session: AsyncSession = Depends(get_session)) -> Dict[str, object]:
    """Delete a dataset with its messages, versions and charts."""
    await DatasetRegistry(session).delete_dataset(dataset_id)
    return {"deleted": True, "id": dataset_id}


@router.get("/datasets/{dataset_id}/data")
async def get_dataset_data(
    dataset_id: int,
    page: int = 1,
    version: str = "latest",
    page_size: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
) -> DatasetPage:
    """Get one page of a dataset version.

    Args:
        dataset_id: Dataset to read.
        page: Page number (1-indexed).
        version: ``latest`` or a version number (0 is the base table).
        page_size: Rows per page (defaults to ``PAGE_SIZE``).
        session: Database session.

    Returns:
        Rows ordered by the ordering column plus pagination metadata.
    """
    return await DatasetReader(session).read_page(dataset_id, page=page, version=version, page_size=page_size)


@router.get("/datasets/{dataset_id}/context")
async def get_dataset_context(dataset_id: int, session: AsyncSession = Depends(get_session)) -> Dict[str, object]:
    """Describe the latest version: table, typed columns and a row sample.

    This is the same view of the dataset the agent receives.
    """
    dataset = await DatasetRegistry(session).get_dataset(dataset_id)
    schema = await VersionStore(session).latest_schema(dataset_id)
    columns = await SQLEngine(session).describe_columns(schema.table_name)
    sample = await DatasetReader(session).sample(dataset_id)
    return {
        "table_name": dataset.table_name,
        "version_table_name": schema.table_name,
        "version": schema.version,
        "columns": [column.model_dump() for column in columns],
        "sample": sample,
    }


@router.get("/datasets/{dataset_id}/versions")
async def list_versions(dataset_id: int, session: AsyncSession = Depends(get_session)) -> List[DatasetVersion]:
    """List all versions of a dataset, oldest first."""
    return await VersionStore(session).list_versions(dataset_id)


@router.post("/datasets/{dataset_id}/versions/reset")
async def reset_version(
    dataset_id: int,
    request: ResetVersionRequest,
    session: AsyncSession = Depends(get_session),
) -> Dict[str, object]:
    """Roll a dataset back by deleting every version newer than the target."""
    dropped = await VersionStore(session).reset_to_version(dataset_id, request.target_version)
    return {"dataset_id": dataset_id, "target_version": request.target_version, "dropped_tables": dropped}


@router.get("/datasets/{dataset_id}/messages")
async def list_messages(dataset_id: int, session: AsyncSession = Depends(get_session)) -> List[Message]:
    await DatasetRegistry(session).get_dataset(dataset_id)
    return await MessageRepository(session).list_for_dataset(dataset_id)


@router.put("/datasets/{dataset_id}/messages")
async def upsert_message(
    dataset_id: int,
    message: Message,
    session: AsyncSession = Depends(get_session),
) -> Message:
    """Insert or overwrite a message of the conversation."""
    await DatasetRegistry(session).get_dataset(dataset_id)
    saved = await MessageRepository(session).upsert(dataset_id, message)
    await session.commit()
    return saved


@router.post("/datasets/{dataset_id}/tools/{tool_name}")
async def call_tool(
    dataset_id: int,
    tool_name: str,
    arguments: Dict[str, Any] = Body(default_factory=dict),
    session: AsyncSession = Depends(get_session),
    sql_generator: Optional[SQLGenerator] = Depends(get_sql_generator),
) -> Dict[str, Any]:
    """Invoke one agent tool directly.

    Returns:
        The tool result; failures come back as ``{"success": false, "error": ...}``.
    """
    await DatasetRegistry(session).get_dataset(dataset_id)
    context = ToolContext(session=session, dataset_id=dataset_id, sql_generator=sql_generator)
    return await get_tool_registry().execute(context, tool_name, arguments)


@router.post("/datasets/{dataset_id}/chat")
async def chat(
    dataset_id: int,
    request: ChatMessageRequest,
    session: AsyncSession = Depends(get_session),
    client: LLMClient = Depends(get_chat_client),
) -> ChatResult:
    """Send a message to the transformation agent.

    Args:
        dataset_id: Dataset the conversation is about.
        request: Message content and optional model override.
        session: Database session.
        client: LLM client.

    Returns:
        The assistant message and the tool calls it made.
    """
    await DatasetRegistry(session).get_dataset(dataset_id)
    service = ChatService(session, client=client, model=request.model)
    return await service.chat(dataset_id, request.content, message_id=request.message_id)


@router.get("/datasets/{dataset_id}/charts")
async def list_saved_charts(dataset_id: int, session: AsyncSession = Depends(get_session)) -> List[Chart]:
    return await ChartService(session).list_saved_charts(dataset_id)


@router.get("/charts/{chart_id}")
async def get_chart(chart_id: int, session: AsyncSession = Depends(get_session)) -> Chart:
    return await ChartService(session).get_chart(chart_id)


@router.get("/charts/{chart_id}/data")
async def get_chart_data(
    chart_id: int,
    page: int = 1,
    page_size: Optional[int] = None,
    session: AsyncSession = Depends(get_session),
) -> DatasetPage:
    return await ChartService(session).read_chart_page(chart_id, page=page, page_size=page_size)


@router.post("/charts/{chart_id}/save")
async def save_chart(chart_id: int, session: AsyncSession = Depends(get_session)) -> Chart:
    """Mark a chart as saved (at most ``MAX_SAVED_CHARTS`` per dataset)."""
    return await ChartService(session).save_chart(chart_id)


@router.post("/charts/{chart_id}/unsave")
async def unsave_chart(chart_id: int, session: AsyncSession = Depends(get_session)) -> Chart:
    return await ChartService(session).unsave_chart(chart_id)


@router.delete("/charts/{chart_id}")
async def delete_chart(chart_id: int, session: AsyncSession = Depends(get_session)) -> Dict[str, Union[bool, int]]:
    await ChartService(session).delete_chart(chart_id)
    return {"deleted": True, "id": chart_id}
