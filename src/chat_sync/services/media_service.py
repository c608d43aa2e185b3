from __future__ import annotations

import logging

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ValidationError
from chat_sync.application.ports.media import MediaStore
from chat_sync.domain.entities.message import MediaRef
from chat_sync.domain.value_objects.enums import MessageType

logger = logging.getLogger(__name__)

IMAGE_TYPES = frozenset({"image/jpeg", "image/png", "image/gif", "image/webp"})
VIDEO_TYPES = frozenset({"video/mp4", "video/webm", "video/quicktime"})
AUDIO_TYPES = frozenset({"audio/mp3", "audio/mpeg", "audio/wav", "audio/ogg", "audio/m4a", "audio/webm"})
DOCUMENT_TYPES = frozenset({
    "application/pdf",
    "text/plain",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
})


def message_type_for(content_type: str) -> MessageType:
    """Message kind for an accepted MIME type. Raises ValidationError otherwise."""
    base = content_type.split(";", 1)[0].strip().lower()
    if base in IMAGE_TYPES:
        return MessageType.IMAGE
    if base in VIDEO_TYPES:
        return MessageType.VIDEO
    if base in AUDIO_TYPES:
        return MessageType.VOICE
    if base in DOCUMENT_TYPES:
        return MessageType.DOCUMENT
    raise ValidationError(f"Unsupported file type: {content_type}")


async def upload_media(
    principal: Principal,
    data: bytes,
    *,
    filename: str,
    content_type: str,
    store: MediaStore,
    max_bytes: int,
    folder: str | None = None,
) -> tuple[MediaRef, MessageType]:
    """Validate a chat attachment and hand it to the media store."""
    msg_type = message_type_for(content_type)
    if not data:
        raise ValidationError("No file provided")
    if len(data) > max_bytes:
        raise ValidationError(
            f"File too large. Maximum size is {max_bytes / (1024 * 1024):.1f}MB."
        )

    ref = await store.upload(
        data,
        filename=filename or "upload",
        content_type=content_type.split(";", 1)[0].strip().lower(),
        folder=folder,
    )
    logger.info(
        "User %s uploaded %s (%d bytes) as %s",
        principal.user_id, msg_type.value, len(data), ref.public_id,
    )
    return ref, msg_type
