from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True, slots=True)
class MessagePreview:
    message_id: str
    sequence: int
    sender_id: str
    type: str
    text: str
    created_at: datetime


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    """One row of a user's conversation list."""

    conversation_id: str
    kind: str
    title: str | None
    participants: list[str] = field(default_factory=list)
    latest_sequence: int = 0
    read_sequence: int = 0
    unread_count: int = 0
    preview: str = ""
    last_message: MessagePreview | None = None
    last_activity_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        preview = self.last_message
        return {
            "conversation_id": self.conversation_id,
            "kind": self.kind,
            "title": self.title,
            "participants": list(self.participants),
            "latest_sequence": self.latest_sequence,
            "read_sequence": self.read_sequence,
            "unread_count": self.unread_count,
            "preview": self.preview,
            "last_message": None if preview is None else {
                "message_id": preview.message_id,
                "sequence": preview.sequence,
                "sender_id": preview.sender_id,
                "type": preview.type,
                "text": preview.text,
                "created_at": preview.created_at.isoformat(),
            },
            "last_activity_at": (
                self.last_activity_at.isoformat() if self.last_activity_at else None
            ),
        }
