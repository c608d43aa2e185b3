from __future__ import annotations

from typing import Any

import jwt

from chat_sync.application.dto.principal import Principal


def principal_from_claims(payload: dict[str, Any]) -> Principal:
    """Map identity-provider claims onto a Principal. ``sub`` is an opaque user id."""
    subject = payload.get("sub")
    if not subject or not isinstance(subject, str):
        raise jwt.InvalidTokenError("Token has no usable 'sub' claim")
    return Principal(
        user_id=subject,
        display_name=payload.get("name") or payload.get("email"),
        avatar_url=payload.get("picture"),
    )
