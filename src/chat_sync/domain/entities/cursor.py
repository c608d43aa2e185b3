from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime

from chat_sync.domain.value_objects.enums import CursorType


@dataclass(frozen=True, slots=True)
class ParticipantCursor:
    """Highest sequence a participant has received and has read.

    Cursors only move forward: every update is a max-merge, so applying the
    same acknowledgement twice, or an older one after a newer one, is a no-op.
    """

    conversation_id: str
    participant_id: str
    delivered_seq: int = 0
    read_seq: int = 0
    updated_at: datetime | None = None

    @property
    def is_consistent(self) -> bool:
        return 0 <= self.read_seq <= self.delivered_seq

    def advance(self, cursor_type: CursorType, sequence: int) -> ParticipantCursor:
        # Reading implies receipt, so a read also lifts the delivered cursor.
        delivered = max(self.delivered_seq, sequence)
        if cursor_type == CursorType.DELIVERED:
            return replace(self, delivered_seq=delivered)
        return replace(
            self,
            delivered_seq=delivered,
            read_seq=max(self.read_seq, sequence),
        )

    def merge(self, other: ParticipantCursor) -> ParticipantCursor:
        return replace(
            self,
            delivered_seq=max(self.delivered_seq, other.delivered_seq),
            read_seq=max(self.read_seq, other.read_seq),
        )

    def same_position(self, other: ParticipantCursor) -> bool:
        return (
            self.delivered_seq == other.delivered_seq
            and self.read_seq == other.read_seq
        )
