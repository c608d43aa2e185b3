from __future__ import annotations

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.application.exceptions import ConflictError
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.infrastructure.db.mappers import conversation as mapper
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel


class ConversationReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        # populate_existing: the sequence counter must never come from a stale identity map
        stmt = (
            select(ConversationModel)
            .where(ConversationModel.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        stmt = (
            select(ConversationModel)
            .join(
                ParticipantModel,
                ParticipantModel.conversation_id == ConversationModel.id,
            )
            .where(ParticipantModel.user_id == user_id)
            .order_by(ConversationModel.created_at.desc(), ConversationModel.id)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class ConversationWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation: Conversation) -> Conversation:
        """Insert a conversation. An id that is already taken raises ConflictError."""
        model = mapper.entity_to_model(conversation)
        try:
            async with self._session.begin_nested():
                self._session.add(model)
                await self._session.flush()
        except IntegrityError as exc:
            raise ConflictError(f"Conversation {conversation.id} already exists") from exc
        return mapper.model_to_entity(model)

    async def compare_and_set_sequence(
        self,
        conversation_id: str,
        expected: int,
        new: int,
    ) -> bool:
        stmt = (
            update(ConversationModel)
            .where(
                ConversationModel.id == conversation_id,
                ConversationModel.last_sequence == expected,
            )
            .values(last_sequence=new)
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1
