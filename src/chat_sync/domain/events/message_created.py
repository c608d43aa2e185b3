from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chat_sync.domain.entities.message import Message

EVENT_TYPE = "chat.message_created"


@dataclass(frozen=True, slots=True)
class MessageCreated:
    message: Message

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": self.message.conversation_id,
            "sequence": self.message.sequence,
            "message": self.message.to_dict(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> MessageCreated:
        return cls(message=Message.from_dict(payload["message"]))
