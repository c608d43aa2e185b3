from __future__ import annotations

from fastapi import APIRouter, File, UploadFile

from chat_sync.api.deps import CurrentPrincipal, MediaStoreDep
from chat_sync.api.v1.schemas.media import MediaRefSchema, MediaUploadResponse
from chat_sync.config import settings
from chat_sync.services import media_service

router = APIRouter(prefix="/api/v1/chat/media", tags=["media"])


@router.post("", response_model=MediaUploadResponse, status_code=201)
async def upload_media(
    principal: CurrentPrincipal,
    store: MediaStoreDep,
    file: UploadFile = File(...),
) -> MediaUploadResponse:
    data = await file.read(settings.MEDIA_MAX_BYTES + 1)
    ref, msg_type = await media_service.upload_media(
        principal,
        data,
        filename=file.filename or "upload",
        content_type=file.content_type or "application/octet-stream",
        store=store,
        max_bytes=settings.MEDIA_MAX_BYTES,
        folder=settings.MEDIA_FOLDER,
    )
    return MediaUploadResponse(
        media=MediaRefSchema.model_validate(ref),
        message_type=msg_type,
    )
