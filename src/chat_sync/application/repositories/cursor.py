from __future__ import annotations

from typing import Protocol

from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.domain.value_objects.enums import CursorType


class CursorReader(Protocol):
    async def get(
        self, conversation_id: str, participant_id: str
    ) -> ParticipantCursor | None: ...

    async def list_for_conversation(
        self, conversation_id: str
    ) -> list[ParticipantCursor]: ...

    async def list_for_participant(
        self, participant_id: str
    ) -> list[ParticipantCursor]: ...


class CursorWriter(Protocol):
    async def upsert_cursor(
        self,
        conversation_id: str,
        participant_id: str,
        cursor_type: CursorType,
        sequence: int,
    ) -> None:
        """Monotonic max-merge of one cursor. Never moves a cursor backwards."""
        ...
