from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from chat_sync.api.v1.schemas.media import MediaRefSchema
from chat_sync.domain.value_objects.enums import MessageStatus, MessageType


class SendMessageRequest(BaseModel):
    client_msg_id: UUID
    type: MessageType = MessageType.TEXT
    body: str | None = Field(default=None, max_length=4000)
    media: MediaRefSchema | None = None
    reply_to: UUID | None = None


class MessageResponse(BaseModel):
    id: UUID
    conversation_id: str
    sequence: int
    sender_id: str
    sender_name: str | None
    type: str
    body: str | None
    media: MediaRefSchema | None
    reply_to: UUID | None
    client_msg_id: UUID
    created_at: datetime
    status: MessageStatus | None = None

    model_config = {"from_attributes": True}


class ReadAckRequest(BaseModel):
    sequence: int = Field(ge=0)


class ReadAckResponse(BaseModel):
    conversation_id: str
    participant_id: str
    delivered_seq: int
    read_seq: int
    advanced: bool

    model_config = {"from_attributes": True}
