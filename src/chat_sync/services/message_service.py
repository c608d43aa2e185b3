from __future__ import annotations

import logging
import uuid

from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ConflictError, ValidationError
from chat_sync.application.policies.permissions import assert_conversation_access
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.uow import UnitOfWork
from chat_sync.domain.entities.message import Message
from chat_sync.domain.events.message_created import EVENT_TYPE as MESSAGE_CREATED
from chat_sync.domain.events.message_created import MessageCreated
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)

MAX_BODY_LENGTH = 4000
DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 200


def validate_content(dto: SendMessageDTO) -> None:
    """Text needs a non-blank body; media kinds need a media reference."""
    msg_type = MessageType(dto.type)
    if msg_type == MessageType.SYSTEM:
        raise ValidationError("System messages cannot be sent by clients")
    if dto.body is not None and len(dto.body) > MAX_BODY_LENGTH:
        raise ValidationError(f"Message body exceeds {MAX_BODY_LENGTH} characters")
    if msg_type == MessageType.TEXT:
        if not dto.body or not dto.body.strip():
            raise ValidationError("Text messages need a non-empty body")
        if dto.media is not None:
            raise ValidationError("Text messages cannot carry media")
    elif dto.media is None:
        raise ValidationError(f"{msg_type.value} messages need a media reference")


async def send_message(
    dto: SendMessageDTO,
    principal: Principal,
    uow: UnitOfWork,
    allocator: SequenceAllocator,
    *,
    clock: Clock | None = None,
    origin: str | None = None,
) -> tuple[Message, bool]:
    """Append a message to the conversation log idempotently.

    Returns (message, created). Re-sending a ``client_msg_id`` the sender
    already used returns the stored message with created=False and allocates
    nothing.
    """
    validate_content(dto)
    conversation = await uow.conversations.get_by_id(dto.conversation_id)
    await assert_conversation_access(principal.user_id, conversation, uow.participants)

    existing = await uow.messages.get_by_client_msg_id(
        dto.conversation_id, principal.user_id, dto.client_msg_id
    )
    if existing is not None:
        return existing, False

    if dto.reply_to is not None:
        parent = await uow.messages.get_by_id(dto.reply_to)
        if parent is None or parent.conversation_id != dto.conversation_id:
            raise ValidationError("reply_to must reference a message in this conversation")

    sequence = await allocator.allocate(uow, dto.conversation_id)
    message = Message(
        id=uuid.uuid4(),
        conversation_id=dto.conversation_id,
        sequence=sequence,
        sender_id=principal.user_id,
        sender_name=principal.display_name,
        type=MessageType(dto.type).value,
        body=dto.body,
        media=dto.media,
        reply_to=dto.reply_to,
        client_msg_id=dto.client_msg_id,
        created_at=(clock or SystemClock()).now(),
    )

    try:
        message = await uow.messages_w.append(message)
    except ConflictError:
        # A concurrent retry with the same client_msg_id won; drop our sequence bump.
        await uow.rollback()
        winner = await uow.messages.get_by_client_msg_id(
            dto.conversation_id, principal.user_id, dto.client_msg_id
        )
        if winner is None:
            raise
        return winner, False

    payload = MessageCreated(message).to_payload()
    if origin is not None:
        payload["origin"] = origin
    await uow.outbox.add(MESSAGE_CREATED, payload)
    await uow.commit()

    logger.info(
        "Message %s appended to %s at sequence %d",
        message.id, message.conversation_id, message.sequence,
    )
    return message, True


async def list_messages(
    conversation_id: str,
    principal: Principal,
    after_sequence: int,
    limit: int,
    uow: UnitOfWork,
) -> tuple[list[Message], int]:
    """A page of the log after ``after_sequence`` plus the latest sequence."""
    if after_sequence < 0:
        raise ValidationError("after_sequence must be >= 0")
    limit = max(1, min(limit, MAX_PAGE_LIMIT))
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = await assert_conversation_access(
        principal.user_id, conversation, uow.participants
    )
    messages = await uow.messages.read_range(conversation_id, after_sequence, limit=limit)
    return messages, conversation.last_sequence
