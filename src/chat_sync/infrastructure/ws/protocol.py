"""WebSocket message envelope models."""
from __future__ import annotations

from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from chat_sync.api.v1.schemas.media import MediaRefSchema
from chat_sync.domain.value_objects.enums import MessageType


class WsInbound(BaseModel):
    """Client → Server."""

    type: str  # ping | subscribe | unsubscribe | message.send | mark_read
    data: dict[str, Any] = {}


class WsOutbound(BaseModel):
    """Server → Client."""

    # pong | subscribed | message.created | message.sent | message.status
    # | conversation.updated | resync_required | error
    type: str
    data: dict[str, Any] = {}


class SubscribePayload(BaseModel):
    conversation_id: str = Field(min_length=1)
    since_sequence: int = Field(default=0, ge=0)


class UnsubscribePayload(BaseModel):
    conversation_id: str = Field(min_length=1)


class SendPayload(BaseModel):
    """Either ``conversation_id`` or ``recipient_id`` (direct chat) is required."""

    conversation_id: str | None = None
    recipient_id: str | None = None
    client_msg_id: UUID
    type: MessageType = MessageType.TEXT
    body: str | None = Field(default=None, max_length=4000)
    media: MediaRefSchema | None = None
    reply_to: UUID | None = None


class MarkReadPayload(BaseModel):
    conversation_id: str = Field(min_length=1)
    sequence: int = Field(ge=0)
