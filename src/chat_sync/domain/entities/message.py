from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from uuid import UUID


@dataclass(frozen=True, slots=True)
class MediaRef:
    """Reference to a blob held by the external media store."""

    url: str
    public_id: str
    resource_type: str
    content_type: str
    size_bytes: int | None = None
    file_name: str | None = None
    width: int | None = None
    height: int | None = None
    duration: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MediaRef:
        return cls(
            url=data["url"],
            public_id=data["public_id"],
            resource_type=data.get("resource_type", "raw"),
            content_type=data.get("content_type", "application/octet-stream"),
            size_bytes=data.get("size_bytes"),
            file_name=data.get("file_name"),
            width=data.get("width"),
            height=data.get("height"),
            duration=data.get("duration"),
        )


@dataclass(frozen=True, slots=True)
class Message:
    id: UUID
    conversation_id: str
    sequence: int
    sender_id: str
    sender_name: str | None
    type: str
    body: str | None
    media: MediaRef | None
    reply_to: UUID | None
    client_msg_id: UUID
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "conversation_id": self.conversation_id,
            "sequence": self.sequence,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "type": self.type,
            "body": self.body,
            "media": self.media.to_dict() if self.media else None,
            "reply_to": str(self.reply_to) if self.reply_to else None,
            "client_msg_id": str(self.client_msg_id),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Message:
        media = data.get("media")
        reply_to = data.get("reply_to")
        return cls(
            id=UUID(str(data["id"])),
            conversation_id=data["conversation_id"],
            sequence=int(data["sequence"]),
            sender_id=data["sender_id"],
            sender_name=data.get("sender_name"),
            type=data["type"],
            body=data.get("body"),
            media=MediaRef.from_dict(media) if media else None,
            reply_to=UUID(str(reply_to)) if reply_to else None,
            client_msg_id=UUID(str(data["client_msg_id"])),
            created_at=datetime.fromisoformat(data["created_at"]),
        )
