from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CreateDirectConversationRequest(BaseModel):
    peer_id: str = Field(min_length=1, max_length=128)


class CreateGroupConversationRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    member_ids: list[str] = Field(min_length=1)


class ConversationResponse(BaseModel):
    id: str
    kind: str
    title: str | None
    created_by: str
    last_sequence: int
    created_at: datetime
    participants: list[str] = []

    model_config = {"from_attributes": True}


class MessagePreviewResponse(BaseModel):
    message_id: str
    sequence: int
    sender_id: str
    type: str
    text: str
    created_at: datetime

    model_config = {"from_attributes": True}


class ConversationSummaryResponse(BaseModel):
    conversation_id: str
    kind: str
    title: str | None
    participants: list[str]
    latest_sequence: int
    read_sequence: int
    unread_count: int
    preview: str
    last_message: MessagePreviewResponse | None
    last_activity_at: datetime | None

    model_config = {"from_attributes": True}


class ConversationListResponse(BaseModel):
    items: list[ConversationSummaryResponse]
    total_unread: int
