from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class StatusAdvanced:
    """Messages of ``sender_id`` with sequence in (from_sequence, to_sequence] reached ``status``."""

    conversation_id: str
    sender_id: str
    status: str
    from_sequence: int
    to_sequence: int

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "sender_id": self.sender_id,
            "status": self.status,
            "from_sequence": self.from_sequence,
            "to_sequence": self.to_sequence,
        }
