from __future__ import annotations

from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.infrastructure.db.models.cursor import ParticipantCursorModel


def model_to_entity(model: ParticipantCursorModel) -> ParticipantCursor:
    return ParticipantCursor(
        conversation_id=model.conversation_id,
        participant_id=model.participant_id,
        delivered_seq=model.delivered_seq,
        read_seq=model.read_seq,
        updated_at=model.updated_at,
    )
