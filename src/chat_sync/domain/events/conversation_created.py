from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

EVENT_TYPE = "chat.conversation_created"


@dataclass(frozen=True, slots=True)
class ConversationCreated:
    conversation_id: str
    kind: str
    created_by: str
    member_ids: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "kind": self.kind,
            "created_by": self.created_by,
            "member_ids": list(self.member_ids),
        }
