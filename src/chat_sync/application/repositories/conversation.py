from __future__ import annotations

from typing import Protocol

from chat_sync.domain.entities.conversation import Conversation


class ConversationReader(Protocol):
    async def get_by_id(self, conversation_id: str) -> Conversation | None: ...

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        """All conversations where ``user_id`` has a participant record."""
        ...


class ConversationWriter(Protocol):
    async def create(self, conversation: Conversation) -> Conversation: ...

    async def compare_and_set_sequence(
        self, conversation_id: str, expected: int, new: int
    ) -> bool:
        """Conditional write of the sequence counter. False if ``expected`` is stale."""
        ...
