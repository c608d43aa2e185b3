"""Unsigned Cloudinary upload client over httpx."""
from __future__ import annotations

import logging
import time
import uuid
from typing import Any

import httpx

from chat_sync.application.exceptions import MediaUploadError
from chat_sync.domain.entities.message import MediaRef

logger = logging.getLogger(__name__)


def resource_endpoint(content_type: str) -> str:
    """Cloudinary upload endpoint for a MIME type. Audio is hosted as video."""
    if content_type.startswith("image/"):
        return "image/upload"
    if content_type.startswith(("video/", "audio/")):
        return "video/upload"
    return "raw/upload"


class CloudinaryMediaStore:
    """Implements application.ports.media.MediaStore."""

    def __init__(
        self,
        *,
        cloud_name: str,
        upload_preset: str,
        base_url: str = "https://api.cloudinary.com/v1_1",
        default_folder: str = "chat/media",
        timeout: float = 60.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._upload_preset = upload_preset
        self._default_folder = default_folder
        self._client = client or httpx.AsyncClient(
            base_url=f"{base_url.rstrip('/')}/{cloud_name}",
            headers={"Accept": "application/json"},
            timeout=timeout,
        )

    async def upload(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        folder: str | None = None,
    ) -> MediaRef:
        folder = folder or self._default_folder
        endpoint = resource_endpoint(content_type)
        public_id = f"{folder.rsplit('/', 1)[-1]}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:10]}"
        form = {
            "upload_preset": self._upload_preset,
            "folder": folder,
            "public_id": public_id,
        }
        files = {"file": (filename, data, content_type)}

        logger.info(
            "Uploading media: endpoint=%s content_type=%s size=%d",
            endpoint, content_type, len(data),
        )
        try:
            resp = await self._client.post(f"/{endpoint}", data=form, files=files)
        except httpx.HTTPError as exc:
            raise MediaUploadError(f"Media store unreachable: {exc}") from exc

        if resp.status_code >= 400:
            raise MediaUploadError(_error_message(resp))

        try:
            body: dict[str, Any] = resp.json()
            url = body["secure_url"]
            stored_id = body["public_id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise MediaUploadError(
                f"Unexpected media store response (HTTP {resp.status_code})"
            ) from exc
        return MediaRef(
            url=url,
            public_id=stored_id,
            resource_type=body.get("resource_type", endpoint.split("/", 1)[0]),
            content_type=content_type,
            size_bytes=body.get("bytes", len(data)),
            file_name=filename,
            width=body.get("width"),
            height=body.get("height"),
            duration=body.get("duration"),
        )

    async def close(self) -> None:
        await self._client.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return f"HTTP {resp.status_code}: {resp.reason_phrase}"
