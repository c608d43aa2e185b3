from __future__ import annotations

import logging

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ConflictError, ValidationError
from chat_sync.application.policies.permissions import assert_conversation_access
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.uow import UnitOfWork
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.events.conversation_created import EVENT_TYPE as CONVERSATION_CREATED
from chat_sync.domain.events.conversation_created import ConversationCreated
from chat_sync.domain.value_objects.enums import ConversationKind
from chat_sync.domain.value_objects.ids import (
    DIRECT_SEPARATOR,
    direct_conversation_id,
    new_group_conversation_id,
)

logger = logging.getLogger(__name__)

MAX_GROUP_MEMBERS = 256


async def get_or_create_direct(
    principal: Principal,
    peer_id: str,
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
    origin: str | None = None,
) -> tuple[Conversation, bool]:
    """Return the 1:1 conversation between the caller and ``peer_id``, creating it if needed.

    Returns (conversation, created).
    """
    try:
        conversation_id = direct_conversation_id(principal.user_id, peer_id)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    existing = await uow.conversations.get_by_id(conversation_id)
    if existing is not None:
        return existing, False

    conversation = Conversation(
        id=conversation_id,
        kind=ConversationKind.DIRECT.value,
        title=None,
        created_by=principal.user_id,
        last_sequence=0,
        created_at=(clock or SystemClock()).now(),
    )
    members = sorted({principal.user_id, peer_id})
    try:
        conversation = await _create(uow, conversation, members, origin)
    except ConflictError:
        # The peer opened the same chat concurrently.
        await uow.rollback()
        existing = await uow.conversations.get_by_id(conversation_id)
        if existing is None:
            raise
        return existing, False
    return conversation, True


async def create_group(
    principal: Principal,
    title: str,
    member_ids: list[str],
    uow: UnitOfWork,
    *,
    clock: Clock | None = None,
    origin: str | None = None,
) -> Conversation:
    """Create a group conversation. The creator is always a member."""
    title = title.strip()
    if not title:
        raise ValidationError("Group title must not be empty")
    members = sorted({principal.user_id, *(m.strip() for m in member_ids if m and m.strip())})
    if len(members) < 2:
        raise ValidationError("A group needs at least one member besides the creator")
    if len(members) > MAX_GROUP_MEMBERS:
        raise ValidationError(f"A group can have at most {MAX_GROUP_MEMBERS} members")
    if any(DIRECT_SEPARATOR in m for m in members):
        raise ValidationError(f"Member ids must not contain {DIRECT_SEPARATOR!r}")

    conversation = Conversation(
        id=new_group_conversation_id(),
        kind=ConversationKind.GROUP.value,
        title=title,
        created_by=principal.user_id,
        last_sequence=0,
        created_at=(clock or SystemClock()).now(),
    )
    return await _create(uow, conversation, members, origin)


async def get_conversation(
    conversation_id: str,
    principal: Principal,
    uow: UnitOfWork,
) -> tuple[Conversation, list[str]]:
    conversation = await uow.conversations.get_by_id(conversation_id)
    conversation = await assert_conversation_access(
        principal.user_id, conversation, uow.participants
    )
    participants = await uow.participants.list_participants(conversation_id)
    return conversation, [p.user_id for p in participants]


async def _create(
    uow: UnitOfWork,
    conversation: Conversation,
    members: list[str],
    origin: str | None,
) -> Conversation:
    conversation = await uow.conversations_w.create(conversation)
    for user_id in members:
        await uow.participants_w.add(
            Participant(
                conversation_id=conversation.id,
                user_id=user_id,
                joined_at=conversation.created_at,
            )
        )

    payload = ConversationCreated(
        conversation_id=conversation.id,
        kind=conversation.kind,
        created_by=conversation.created_by,
        member_ids=members,
    ).to_payload()
    if origin is not None:
        payload["origin"] = origin
    await uow.outbox.add(CONVERSATION_CREATED, payload)
    await uow.commit()

    logger.info(
        "Created %s conversation %s with %d members",
        conversation.kind, conversation.id, len(members),
    )
    return conversation
