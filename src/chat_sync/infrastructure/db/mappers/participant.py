from __future__ import annotations

from chat_sync.domain.entities.participant import Participant
from chat_sync.infrastructure.db.models.participant import ParticipantModel


def model_to_entity(model: ParticipantModel) -> Participant:
    return Participant(
        conversation_id=model.conversation_id,
        user_id=model.user_id,
        joined_at=model.joined_at,
    )


def entity_to_model(entity: Participant) -> ParticipantModel:
    return ParticipantModel(
        conversation_id=entity.conversation_id,
        user_id=entity.user_id,
        joined_at=entity.joined_at,
    )
