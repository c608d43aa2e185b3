from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class PresenceResponse(BaseModel):
    user_id: str
    online: bool
    last_seen: datetime | None = None

    model_config = {"from_attributes": True}
