from __future__ import annotations

from typing import Protocol
from uuid import UUID

from chat_sync.domain.entities.message import Message


class MessageReader(Protocol):
    async def read_range(
        self,
        conversation_id: str,
        after_sequence: int,
        to_sequence: int | None = None,
        *,
        limit: int = 100,
    ) -> list[Message]:
        """Messages with ``after_sequence < sequence <= to_sequence``, ascending."""
        ...

    async def get_by_id(self, message_id: UUID) -> Message | None: ...

    async def get_latest(self, conversation_id: str) -> Message | None: ...

    async def get_by_client_msg_id(
        self,
        conversation_id: str,
        sender_id: str,
        client_msg_id: UUID,
    ) -> Message | None: ...


class MessageWriter(Protocol):
    async def append(self, message: Message) -> Message:
        """Persist a sequenced message. Raises ConflictError if the sequence is taken."""
        ...
