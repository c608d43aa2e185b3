from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from chat_sync.domain.entities.message import MediaRef
from chat_sync.domain.value_objects.enums import MessageType


@dataclass(frozen=True, slots=True)
class SendMessageDTO:
    conversation_id: str
    client_msg_id: UUID
    type: MessageType = MessageType.TEXT
    body: str | None = None
    media: MediaRef | None = None
    reply_to: UUID | None = None


@dataclass(frozen=True, slots=True)
class AckResult:
    """Outcome of a cursor merge. ``advanced`` is False for duplicate acknowledgements."""

    conversation_id: str
    participant_id: str
    delivered_seq: int
    read_seq: int
    advanced: bool
