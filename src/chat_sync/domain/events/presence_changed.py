from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

EVENT_TYPE = "chat.presence_changed"


@dataclass(frozen=True, slots=True)
class PresenceChanged:
    """A user's first connection opened, or their last one closed, on one node."""

    user_id: str
    online: bool
    at: datetime

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "online": self.online,
            "at": self.at.isoformat(),
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> PresenceChanged:
        return cls(
            user_id=payload["user_id"],
            online=bool(payload["online"]),
            at=datetime.fromisoformat(payload["at"]),
        )
