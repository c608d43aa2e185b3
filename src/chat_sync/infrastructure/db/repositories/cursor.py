from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.domain.value_objects.enums import CursorType
from chat_sync.infrastructure.db.mappers import cursor as mapper
from chat_sync.infrastructure.db.models.cursor import ParticipantCursorModel


class CursorReaderRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(
        self,
        conversation_id: str,
        participant_id: str,
    ) -> ParticipantCursor | None:
        stmt = (
            select(ParticipantCursorModel)
            .where(
                ParticipantCursorModel.conversation_id == conversation_id,
                ParticipantCursorModel.participant_id == participant_id,
            )
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        model = result.scalar_one_or_none()
        return mapper.model_to_entity(model) if model else None

    async def list_for_conversation(self, conversation_id: str) -> list[ParticipantCursor]:
        stmt = (
            select(ParticipantCursorModel)
            .where(ParticipantCursorModel.conversation_id == conversation_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]

    async def list_for_participant(self, participant_id: str) -> list[ParticipantCursor]:
        stmt = (
            select(ParticipantCursorModel)
            .where(ParticipantCursorModel.participant_id == participant_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return [mapper.model_to_entity(m) for m in result.scalars().all()]


class CursorWriterRepo:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_cursor(
        self,
        conversation_id: str,
        participant_id: str,
        cursor_type: CursorType,
        sequence: int,
    ) -> None:
        table = ParticipantCursorModel.__table__
        read_seq = sequence if cursor_type == CursorType.READ else 0
        stmt = pg_insert(ParticipantCursorModel).values(
            conversation_id=conversation_id,
            participant_id=participant_id,
            delivered_seq=sequence,
            read_seq=read_seq,
        )
        set_ = {
            "delivered_seq": func.greatest(table.c.delivered_seq, stmt.excluded.delivered_seq),
            "updated_at": func.now(),
        }
        if cursor_type == CursorType.READ:
            set_["read_seq"] = func.greatest(table.c.read_seq, stmt.excluded.read_seq)
        stmt = stmt.on_conflict_do_update(constraint="uq_participant_cursor", set_=set_)
        await self._session.execute(stmt)
