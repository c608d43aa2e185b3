from __future__ import annotations

from typing import Any

from chat_sync.domain.entities.message import MediaRef, Message
from chat_sync.infrastructure.db.models.message import MessageModel


def model_to_entity(model: MessageModel) -> Message:
    return Message(
        id=model.id,
        conversation_id=model.conversation_id,
        sequence=model.sequence,
        sender_id=model.sender_id,
        sender_name=model.sender_name,
        type=model.type,
        body=model.body,
        media=MediaRef.from_dict(model.media) if model.media else None,
        reply_to=model.reply_to,
        client_msg_id=model.client_msg_id,
        created_at=model.created_at,
    )


def entity_to_values(entity: Message) -> dict[str, Any]:
    """Column values for a Core ``insert`` of the message."""
    return {
        "id": entity.id,
        "conversation_id": entity.conversation_id,
        "sequence": entity.sequence,
        "sender_id": entity.sender_id,
        "sender_name": entity.sender_name,
        "type": entity.type,
        "body": entity.body,
        "media": entity.media.to_dict() if entity.media else None,
        "reply_to": entity.reply_to,
        "client_msg_id": entity.client_msg_id,
        "created_at": entity.created_at,
    }
