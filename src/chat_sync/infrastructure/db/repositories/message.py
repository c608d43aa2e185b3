from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.application.exceptions import ConflictError
from chat_sync.domain.entities.message import Message
from chat_sync.infrastructure.db.mappers import message as mapper
from chat_sync.infrastructure.db.models.message import MessageModel


class MessageReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def read_range(
        self,
        conversation_id: str,
        after_sequence: int,
        to_sequence: int | None = None,
        *,
        limit: int = 100,
    ) -> list[Message]:
        stmt = (
            select(MessageModel)
            .where(
                MessageModel.conversation_id == conversation_id,
                MessageModel.sequence > after_sequence,
            )
            .order_by(MessageModel.sequence.asc())
            .limit(limit)
        )
        if to_sequence is not None:
            stmt = stmt.where(MessageModel.sequence <= to_sequence)
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def get_by_id(self, message_id: UUID) -> Message | None:
        model = await self._session.get(MessageModel, message_id)
        return mapper.model_to_entity(model) if model else None

    async def get_latest(self, conversation_id: str) -> Message | None:
        stmt = (
            select(MessageModel)
            .where(MessageModel.conversation_id == conversation_id)
            .order_by(MessageModel.sequence.desc())
            .limit(1)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def get_by_client_msg_id(
        self,
        conversation_id: str,
        sender_id: str,
        client_msg_id: UUID,
    ) -> Message | None:
        stmt = select(MessageModel).where(
            MessageModel.conversation_id == conversation_id,
            MessageModel.sender_id == sender_id,
            MessageModel.client_msg_id == client_msg_id,
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None


class MessageWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def append(self, message: Message) -> Message:
        """Insert a sequenced message. Both unique constraints surface as ConflictError."""
        stmt = (
            pg_insert(MessageModel)
            .values(**mapper.entity_to_values(message))
            .returning(MessageModel)
        )
        try:
            async with self._session.begin_nested():
                result = await self._session.execute(stmt)
                row = result.scalar_one()
        except IntegrityError as exc:
            raise ConflictError(
                f"Message conflicts with an existing row in {message.conversation_id} "
                f"(sequence={message.sequence})"
            ) from exc
        return mapper.model_to_entity(row)
