from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True, slots=True)
class Conversation:
    id: str
    kind: str
    title: str | None
    created_by: str
    last_sequence: int
    created_at: datetime
