from __future__ import annotations

from chat_sync.application.exceptions import ForbiddenError, UnknownConversationError
from chat_sync.application.repositories.participant import ParticipantReader
from chat_sync.domain.entities.conversation import Conversation


async def assert_conversation_access(
    user_id: str,
    conversation: Conversation | None,
    participants: ParticipantReader,
) -> Conversation:
    """Raise if the conversation doesn't exist or ``user_id`` is not a member."""
    if conversation is None:
        raise UnknownConversationError("Conversation not found")

    is_member = await participants.is_participant(conversation.id, user_id)
    if not is_member:
        raise ForbiddenError("Not a participant of this conversation")

    return conversation
