from __future__ import annotations

from enum import StrEnum


class ConversationKind(StrEnum):
    DIRECT = "direct"
    GROUP = "group"


class MessageType(StrEnum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    VOICE = "voice"
    DOCUMENT = "document"
    SYSTEM = "system"

    @property
    def is_media(self) -> bool:
        return self in _MEDIA_TYPES


_MEDIA_TYPES = frozenset(
    {MessageType.IMAGE, MessageType.VIDEO, MessageType.VOICE, MessageType.DOCUMENT}
)


class MessageStatus(StrEnum):
    """Sender-visible delivery status. Ordered: sent < delivered < read."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    MessageStatus.SENT: 0,
    MessageStatus.DELIVERED: 1,
    MessageStatus.READ: 2,
}


class CursorType(StrEnum):
    DELIVERED = "delivered"
    READ = "read"
