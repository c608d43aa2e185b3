from __future__ import annotations

from typing import Protocol

from chat_sync.domain.entities.participant import Participant


class ParticipantReader(Protocol):
    async def is_participant(self, conversation_id: str, user_id: str) -> bool: ...

    async def list_participants(self, conversation_id: str) -> list[Participant]: ...


class ParticipantWriter(Protocol):
    async def add(self, participant: Participant) -> None: ...
