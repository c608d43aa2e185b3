"""Read-state reconciliation.

Each participant has two monotonic cursors, ``delivered_seq`` and ``read_seq``.
Acknowledgements are max-merged into them, and sender-visible message status
is derived from the cursors of the other participants.
"""
from __future__ import annotations

import logging
from typing import Any

from chat_sync.application.dto.message import AckResult
from chat_sync.application.exceptions import (
    InvariantViolation,
    NotFoundError,
    UnknownConversationError,
    ValidationError,
)
from chat_sync.application.policies.status import (
    Frontier,
    message_status,
    sender_frontier,
    status_transitions,
)
from chat_sync.application.uow import UnitOfWork, UnitOfWorkFactory
from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.domain.events.cursor_advanced import EVENT_TYPE as CURSOR_ADVANCED
from chat_sync.domain.events.cursor_advanced import CursorAdvanced
from chat_sync.domain.events.status_advanced import StatusAdvanced
from chat_sync.domain.value_objects.enums import CursorType, MessageStatus
from chat_sync.services.conversation_index import ConversationIndex
from chat_sync.services.fanout import DeliveryFanout

logger = logging.getLogger(__name__)


class ReadStateReconciler:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        fanout: DeliveryFanout,
        index: ConversationIndex,
        *,
        origin: str | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._fanout = fanout
        self._index = index
        self._origin = origin

    async def mark_delivered(
        self, conversation_id: str, participant_id: str, sequence: int
    ) -> AckResult:
        return await self._advance(conversation_id, participant_id, CursorType.DELIVERED, sequence)

    async def acknowledge_read(
        self, conversation_id: str, participant_id: str, sequence: int
    ) -> AckResult:
        """Record that ``participant_id`` has read everything up to ``sequence``.

        Reading implies receipt, so the delivered cursor moves too. Stale or
        repeated acknowledgements leave the cursors alone and return
        ``advanced=False``.
        """
        return await self._advance(conversation_id, participant_id, CursorType.READ, sequence)

    async def _advance(
        self,
        conversation_id: str,
        participant_id: str,
        cursor_type: CursorType,
        sequence: int,
    ) -> AckResult:
        if sequence < 0:
            raise ValidationError("Sequence must be >= 0")

        async with self._uow_factory() as uow:
            conversation = await uow.conversations.get_by_id(conversation_id)
            if conversation is None:
                raise UnknownConversationError(f"Conversation {conversation_id} not found")
            if not await uow.participants.is_participant(conversation_id, participant_id):
                raise UnknownConversationError(
                    f"{participant_id} has no record in conversation {conversation_id}"
                )
            if sequence > conversation.last_sequence:
                raise ValidationError(
                    f"Sequence {sequence} is beyond the latest sequence "
                    f"{conversation.last_sequence}"
                )

            member_ids, before = await self._load_cursors(uow, conversation_id)
            current = before.get(participant_id) or ParticipantCursor(
                conversation_id=conversation_id, participant_id=participant_id
            )
            target = current.advance(cursor_type, sequence)
            if target.same_position(current):
                return AckResult(
                    conversation_id=conversation_id,
                    participant_id=participant_id,
                    delivered_seq=current.delivered_seq,
                    read_seq=current.read_seq,
                    advanced=False,
                )

            await uow.cursors_w.upsert_cursor(
                conversation_id, participant_id, cursor_type, sequence
            )
            stored = await uow.cursors.get(conversation_id, participant_id) or target
            _check_consistent(stored)

            event = CursorAdvanced(
                conversation_id=conversation_id,
                participant_id=participant_id,
                previous_delivered_seq=current.delivered_seq,
                previous_read_seq=current.read_seq,
                delivered_seq=stored.delivered_seq,
                read_seq=stored.read_seq,
            )
            await uow.outbox.add(CURSOR_ADVANCED, self._with_origin(event.to_payload()))
            await uow.commit()

        # Transitions are computed against committed state, which includes
        # acknowledgements other participants committed concurrently.
        async with self._uow_factory() as uow:
            member_ids, after = await self._load_cursors(uow, conversation_id)
        after.setdefault(participant_id, stored)
        before = {**after, participant_id: current}
        await self._announce(conversation_id, member_ids, before, after)
        logger.debug(
            "Cursor %s/%s -> delivered=%d read=%d",
            conversation_id, participant_id, stored.delivered_seq, stored.read_seq,
        )
        return AckResult(
            conversation_id=conversation_id,
            participant_id=participant_id,
            delivered_seq=stored.delivered_seq,
            read_seq=stored.read_seq,
            advanced=True,
        )

    async def apply_remote(self, event: CursorAdvanced) -> None:
        """Notify local connections about a cursor move committed on another node."""
        async with self._uow_factory() as uow:
            member_ids, current = await self._load_cursors(uow, event.conversation_id)
        previous = ParticipantCursor(
            conversation_id=event.conversation_id,
            participant_id=event.participant_id,
            delivered_seq=event.previous_delivered_seq,
            read_seq=event.previous_read_seq,
        )
        moved = ParticipantCursor(
            conversation_id=event.conversation_id,
            participant_id=event.participant_id,
            delivered_seq=event.delivered_seq,
            read_seq=event.read_seq,
        )
        before = {**current, event.participant_id: previous}
        after = {**current, event.participant_id: moved}
        await self._announce(event.conversation_id, member_ids, before, after)

    async def frontier(self, conversation_id: str, sender_id: str) -> Frontier:
        """Status thresholds for messages written by ``sender_id``."""
        async with self._uow_factory() as uow:
            member_ids, cursors = await self._load_cursors(uow, conversation_id)
        return sender_frontier(sender_id, member_ids, cursors)

    async def message_status(self, conversation_id: str, sequence: int) -> MessageStatus:
        async with self._uow_factory() as uow:
            page = await uow.messages.read_range(
                conversation_id, sequence - 1, sequence, limit=1
            )
            if not page:
                raise NotFoundError(f"No message {sequence} in {conversation_id}")
            member_ids, cursors = await self._load_cursors(uow, conversation_id)
        return message_status(page[0].sender_id, sequence, member_ids, cursors)

    async def _announce(
        self,
        conversation_id: str,
        member_ids: list[str],
        before: dict[str, ParticipantCursor],
        after: dict[str, ParticipantCursor],
    ) -> None:
        for change in status_transitions(conversation_id, member_ids, before, after):
            await self._notify_sender(change)
        await self._index.refresh(conversation_id)

    async def _notify_sender(self, change: StatusAdvanced) -> None:
        await self._fanout.notify_user(change.sender_id, "message.status", change.to_payload())

    @staticmethod
    async def _load_cursors(
        uow: UnitOfWork, conversation_id: str
    ) -> tuple[list[str], dict[str, ParticipantCursor]]:
        participants = await uow.participants.list_participants(conversation_id)
        cursors = {
            c.participant_id: c
            for c in await uow.cursors.list_for_conversation(conversation_id)
        }
        for cursor in cursors.values():
            _check_consistent(cursor)
        return [p.user_id for p in participants], cursors

    def _with_origin(self, payload: dict[str, Any]) -> dict[str, Any]:
        if self._origin is not None:
            payload["origin"] = self._origin
        return payload


def _check_consistent(cursor: ParticipantCursor) -> None:
    if not cursor.is_consistent:
        logger.critical(
            "Cursor invariant broken for %s/%s: delivered=%d read=%d",
            cursor.conversation_id, cursor.participant_id,
            cursor.delivered_seq, cursor.read_seq,
        )
        raise InvariantViolation(
            f"read_seq {cursor.read_seq} > delivered_seq {cursor.delivered_seq} "
            f"for {cursor.participant_id}",
            conversation_id=cursor.conversation_id,
        )
