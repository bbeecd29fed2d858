"""Repository for conversation messages.

Messages are keyed by ``(id, dataset_id)`` so that saving the same message
twice (a streamed draft, then its final form) overwrites instead of
duplicating.
"""
from __future__ import annotations

from typing import List

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from models.dataset import Message
from models.db_models import MessageRecord


class MessageRepository:
    """Conversation history per dataset."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def list_for_dataset(self, dataset_id: int) -> List[Message]:
        result = await self._session.execute(
            select(MessageRecord)
            .where(MessageRecord.dataset_id == dataset_id)
            .order_by(MessageRecord.created_at, MessageRecord.id)
        )
        return [Message.from_record(record) for record in result.scalars().all()]

    async def upsert(self, dataset_id: int, message: Message) -> Message:
        """Insert or overwrite a message (idempotent on ``(id, dataset_id)``)."""
        record = await self._session.get(MessageRecord, (message.id, dataset_id))
        if record is None:
            record = MessageRecord(id=message.id, dataset_id=dataset_id)
            self._session.add(record)
        record.role = message.role
        record.metadata_ = message.metadata
        record.parts = message.parts
        await self._session.flush()
        return Message.from_record(record)

    async def delete_for_dataset(self, dataset_id: int) -> None:
        await self._session.execute(delete(MessageRecord).where(MessageRecord.dataset_id == dataset_id))
