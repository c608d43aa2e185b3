"""Per-user conversation list: previews, unread counts and activity order.

Nothing here is cached. Every summary is re-derived from the message log and
the participant cursors, so unread counts cannot drift from the log.
"""
from __future__ import annotations

import logging
from datetime import datetime

from chat_sync.application.dto.conversation import ConversationSummary, MessagePreview
from chat_sync.application.policies.permissions import assert_conversation_access
from chat_sync.application.uow import UnitOfWork, UnitOfWorkFactory
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.services.fanout import DeliveryFanout

logger = logging.getLogger(__name__)

EMPTY_PREVIEW = "Start a conversation"

_MEDIA_LABELS = {
    MessageType.IMAGE: "📷 Photo",
    MessageType.VIDEO: "🎥 Video",
    MessageType.VOICE: "🎵 Audio",
    MessageType.DOCUMENT: "📄 Document",
}


def preview_text(message: Message | None, viewer_id: str) -> str:
    if message is None:
        return EMPTY_PREVIEW
    prefix = "You: " if message.sender_id == viewer_id else ""
    label = _MEDIA_LABELS.get(message.type) or message.body or "Message"
    return f"{prefix}{label}"


def unread_count(latest_sequence: int, read_sequence: int) -> int:
    return max(0, latest_sequence - read_sequence)


def _activity_key(summary: ConversationSummary) -> tuple[float, str]:
    ts = summary.last_activity_at
    return (-(ts.timestamp() if ts else 0.0), summary.conversation_id)


class ConversationIndex:
    def __init__(self, uow_factory: UnitOfWorkFactory, fanout: DeliveryFanout) -> None:
        self._uow_factory = uow_factory
        self._fanout = fanout

    async def list_for_user(self, user_id: str) -> list[ConversationSummary]:
        """All of the user's conversations, most recently active first."""
        async with self._uow_factory() as uow:
            conversations = await uow.conversations.list_for_user(user_id)
            cursors = {
                c.conversation_id: c.read_seq
                for c in await uow.cursors.list_for_participant(user_id)
            }
            summaries = [
                await self._summarize(uow, conv, user_id, cursors.get(conv.id, 0))
                for conv in conversations
            ]
        summaries.sort(key=_activity_key)
        return summaries

    async def summary(self, user_id: str, conversation_id: str) -> ConversationSummary:
        async with self._uow_factory() as uow:
            conversation = await uow.conversations.get_by_id(conversation_id)
            conversation = await assert_conversation_access(
                user_id, conversation, uow.participants
            )
            cursor = await uow.cursors.get(conversation_id, user_id)
            return await self._summarize(
                uow, conversation, user_id, cursor.read_seq if cursor else 0
            )

    async def total_unread(self, user_id: str) -> int:
        """Number of conversations with at least one unread message."""
        return sum(1 for s in await self.list_for_user(user_id) if s.unread_count > 0)

    async def refresh(self, conversation_id: str) -> int:
        """Push a fresh summary to every participant's open connections.

        Returns the number of connections notified.
        """
        async with self._uow_factory() as uow:
            conversation = await uow.conversations.get_by_id(conversation_id)
            if conversation is None:
                logger.warning("Refresh requested for unknown conversation %s", conversation_id)
                return 0
            participants = await uow.participants.list_participants(conversation_id)
            cursors = {
                c.participant_id: c.read_seq
                for c in await uow.cursors.list_for_conversation(conversation_id)
            }
            latest = await uow.messages.get_latest(conversation_id)
            member_ids = [p.user_id for p in participants]
            summaries = {
                user_id: self._build(
                    conversation, member_ids, user_id, cursors.get(user_id, 0), latest
                )
                for user_id in member_ids
            }

        notified = 0
        for user_id, summary in summaries.items():
            notified += await self._fanout.notify_user(
                user_id, "conversation.updated", summary.to_dict()
            )
        return notified

    async def _summarize(
        self,
        uow: UnitOfWork,
        conversation: Conversation,
        user_id: str,
        read_seq: int,
    ) -> ConversationSummary:
        participants = await uow.participants.list_participants(conversation.id)
        latest = await uow.messages.get_latest(conversation.id)
        return self._build(
            conversation, [p.user_id for p in participants], user_id, read_seq, latest
        )

    @staticmethod
    def _build(
        conversation: Conversation,
        participant_ids: list[str],
        viewer_id: str,
        read_seq: int,
        latest: Message | None,
    ) -> ConversationSummary:
        latest_sequence = conversation.last_sequence
        preview = None
        last_activity: datetime = conversation.created_at
        if latest is not None:
            latest_sequence = max(latest_sequence, latest.sequence)
            last_activity = latest.created_at
            preview = MessagePreview(
                message_id=str(latest.id),
                sequence=latest.sequence,
                sender_id=latest.sender_id,
                type=latest.type,
                text=preview_text(latest, viewer_id),
                created_at=latest.created_at,
            )
        return ConversationSummary(
            conversation_id=conversation.id,
            kind=conversation.kind,
            title=conversation.title,
            participants=participant_ids,
            latest_sequence=latest_sequence,
            read_sequence=read_seq,
            unread_count=unread_count(latest_sequence, read_seq),
            preview=preview.text if preview else EMPTY_PREVIEW,
            last_message=preview,
            last_activity_at=last_activity,
        )
