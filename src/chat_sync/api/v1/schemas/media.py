from __future__ import annotations

from pydantic import BaseModel, Field

from chat_sync.domain.entities.message import MediaRef
from chat_sync.domain.value_objects.enums import MessageType


class MediaRefSchema(BaseModel):
    url: str = Field(min_length=1)
    public_id: str = Field(min_length=1)
    resource_type: str = "raw"
    content_type: str = "application/octet-stream"
    size_bytes: int | None = Field(default=None, ge=0)
    file_name: str | None = None
    width: int | None = None
    height: int | None = None
    duration: float | None = None

    model_config = {"from_attributes": True}

    def to_entity(self) -> MediaRef:
        return MediaRef(**self.model_dump())


class MediaUploadResponse(BaseModel):
    media: MediaRefSchema
    message_type: MessageType
