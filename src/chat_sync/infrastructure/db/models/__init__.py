"""Import all models so Alembic can discover them via Base.metadata."""
from chat_sync.infrastructure.db.models.conversation import ConversationModel
from chat_sync.infrastructure.db.models.cursor import ParticipantCursorModel
from chat_sync.infrastructure.db.models.message import MessageModel
from chat_sync.infrastructure.db.models.outbox import OutboxMessageModel
from chat_sync.infrastructure.db.models.participant import ParticipantModel

__all__ = [
    "ConversationModel",
    "MessageModel",
    "OutboxMessageModel",
    "ParticipantCursorModel",
    "ParticipantModel",
]
