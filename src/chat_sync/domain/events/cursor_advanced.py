from __future__ import annotations

from dataclasses import dataclass
from typing import Any

EVENT_TYPE = "chat.cursor_advanced"


@dataclass(frozen=True, slots=True)
class CursorAdvanced:
    """A participant's delivered and/or read cursor moved forward."""

    conversation_id: str
    participant_id: str
    previous_delivered_seq: int
    previous_read_seq: int
    delivered_seq: int
    read_seq: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "participant_id": self.participant_id,
            "previous_delivered_seq": self.previous_delivered_seq,
            "previous_read_seq": self.previous_read_seq,
            "delivered_seq": self.delivered_seq,
            "read_seq": self.read_seq,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> CursorAdvanced:
        return cls(
            conversation_id=payload["conversation_id"],
            participant_id=payload["participant_id"],
            previous_delivered_seq=int(payload["previous_delivered_seq"]),
            previous_read_seq=int(payload["previous_read_seq"]),
            delivered_seq=int(payload["delivered_seq"]),
            read_seq=int(payload["read_seq"]),
        )
