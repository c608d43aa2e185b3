from __future__ import annotations

from typing import Protocol

from chat_sync.domain.entities.message import MediaRef


class MediaStore(Protocol):
    """External blob host. Returns a stable reference; bytes never enter the log."""

    async def upload(
        self,
        data: bytes,
        *,
        filename: str,
        content_type: str,
        folder: str | None = None,
    ) -> MediaRef: ...
