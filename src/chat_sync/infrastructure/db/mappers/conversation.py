from __future__ import annotations

from chat_sync.domain.entities.conversation import Conversation
from chat_sync.infrastructure.db.models.conversation import ConversationModel


def model_to_entity(model: ConversationModel) -> Conversation:
    return Conversation(
        id=model.id,
        kind=model.kind,
        title=model.title,
        created_by=model.created_by,
        last_sequence=model.last_sequence,
        created_at=model.created_at,
    )


def entity_to_model(entity: Conversation) -> ConversationModel:
    return ConversationModel(
        id=entity.id,
        kind=entity.kind,
        title=entity.title,
        created_by=entity.created_by,
        last_sequence=entity.last_sequence,
        created_at=entity.created_at,
    )
