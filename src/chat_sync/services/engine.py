"""Wires the sync components together for one process."""
from __future__ import annotations

import logging
import uuid
from typing import Any

from chat_sync.application.dto.message import AckResult, SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.policies.permissions import assert_conversation_access
from chat_sync.application.policies.status import frontier_events
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.ports.transport import DeliverySink
from chat_sync.application.uow import UnitOfWorkFactory
from chat_sync.config import Settings
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.message import Message
from chat_sync.domain.events import (
    conversation_created,
    cursor_advanced,
    message_created,
    presence_changed,
)
from chat_sync.domain.events.cursor_advanced import CursorAdvanced
from chat_sync.domain.events.message_created import MessageCreated
from chat_sync.domain.events.presence_changed import PresenceChanged
from chat_sync.services import conversation_service, message_service
from chat_sync.services.conversation_index import ConversationIndex
from chat_sync.services.fanout import DeliveryFanout, SubscribeResult
from chat_sync.services.presence import PresenceService
from chat_sync.services.read_state_service import ReadStateReconciler
from chat_sync.services.sequence_allocator import SequenceAllocator
from chat_sync.services.subscriptions import Connection, SubscriptionManager

logger = logging.getLogger(__name__)


class SyncEngine:
    """Owns the per-process subscription registry and the services built on it.

    Every committed change goes through here: the append or acknowledgement
    is persisted first, then pushed to local connections. Changes committed
    on other nodes arrive through ``handle_remote_event``.
    """

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        *,
        allocator: SequenceAllocator | None = None,
        clock: Clock | None = None,
        node_id: str | None = None,
        send_attempts: int = 3,
        send_backoff_seconds: float = 0.05,
        replay_page_size: int = 200,
    ) -> None:
        self.node_id = node_id or uuid.uuid4().hex
        self._uow_factory = uow_factory
        self._clock = clock or SystemClock()
        self.allocator = allocator or SequenceAllocator()
        self.subscriptions = SubscriptionManager()
        self.fanout = DeliveryFanout(
            self.subscriptions,
            uow_factory,
            send_attempts=send_attempts,
            backoff_seconds=send_backoff_seconds,
            page_size=replay_page_size,
        )
        self.index = ConversationIndex(uow_factory, self.fanout)
        self.reconciler = ReadStateReconciler(
            uow_factory, self.fanout, self.index, origin=self.node_id
        )
        self.fanout.on_delivered = self.reconciler.mark_delivered
        self.presence = PresenceService(
            uow_factory, self.subscriptions, self.fanout, clock=self._clock, origin=self.node_id
        )

    @classmethod
    def from_settings(
        cls,
        uow_factory: UnitOfWorkFactory,
        settings: Settings,
        **kwargs: Any,
    ) -> SyncEngine:
        return cls(
            uow_factory,
            allocator=SequenceAllocator(
                max_attempts=settings.SEQUENCE_MAX_ATTEMPTS,
                backoff_seconds=settings.SEQUENCE_BACKOFF_SECONDS,
            ),
            send_attempts=settings.FANOUT_SEND_ATTEMPTS,
            send_backoff_seconds=settings.FANOUT_BACKOFF_SECONDS,
            replay_page_size=settings.REPLAY_PAGE_SIZE,
            **kwargs,
        )

    # -- connections ----------------------------------------------------------

    def connect(self, connection_id: str, user_id: str, sink: DeliverySink) -> Connection:
        return self.subscriptions.open(connection_id, user_id, sink)

    def disconnect(self, connection_id: str) -> None:
        self.fanout.close(connection_id)

    async def open_session(
        self, connection_id: str, user_id: str, sink: DeliverySink
    ) -> Connection:
        """Register a client connection and announce the user online if it is their first."""
        conn = self.connect(connection_id, user_id, sink)
        await self.presence.connected(user_id)
        return conn

    async def close_session(self, connection_id: str, user_id: str) -> None:
        self.disconnect(connection_id)
        await self.presence.disconnected(user_id)

    async def subscribe(
        self, connection_id: str, conversation_id: str, since_sequence: int = 0
    ) -> SubscribeResult:
        """Replay and watch, then tell the connection where its own messages stand.

        Status events only describe later advances, so a reconnecting sender
        gets the current delivered/read frontier as ranges from zero.
        """
        result = await self.fanout.subscribe(connection_id, conversation_id, since_sequence)
        conn = self.subscriptions.get(connection_id)
        if conn is not None:
            frontier = await self.reconciler.frontier(conversation_id, conn.user_id)
            for change in frontier_events(conversation_id, conn.user_id, frontier):
                await self.fanout.send_event(conn, "message.status", change.to_payload())
        return result

    def unsubscribe(self, connection_id: str, conversation_id: str) -> None:
        self.fanout.unsubscribe(connection_id, conversation_id)

    # -- commands -------------------------------------------------------------

    async def create_direct(
        self, principal: Principal, peer_id: str
    ) -> tuple[Conversation, bool]:
        async with self._uow_factory() as uow:
            conversation, created = await conversation_service.get_or_create_direct(
                principal, peer_id, uow, clock=self._clock, origin=self.node_id
            )
        if created:
            await self.index.refresh(conversation.id)
        return conversation, created

    async def create_group(
        self, principal: Principal, title: str, member_ids: list[str]
    ) -> Conversation:
        async with self._uow_factory() as uow:
            conversation = await conversation_service.create_group(
                principal, title, member_ids, uow, clock=self._clock, origin=self.node_id
            )
        await self.index.refresh(conversation.id)
        return conversation

    async def send_message(
        self, principal: Principal, dto: SendMessageDTO
    ) -> tuple[Message, bool]:
        """Allocate, persist, then fan out. Returns (message, created)."""
        async with self._uow_factory() as uow:
            message, created = await message_service.send_message(
                dto,
                principal,
                uow,
                self.allocator,
                clock=self._clock,
                origin=self.node_id,
            )
        if not created:
            return message, False

        await self.fanout.publish(message.conversation_id, message)
        # Own messages are never unread for their sender. This also refreshes the index.
        await self.reconciler.acknowledge_read(
            message.conversation_id, principal.user_id, message.sequence
        )
        return message, True

    async def send_direct(
        self, principal: Principal, recipient_id: str, dto: SendMessageDTO
    ) -> tuple[Message, bool]:
        """Send to a 1:1 chat, creating the conversation on first contact."""
        conversation, _ = await self.create_direct(principal, recipient_id)
        return await self.send_message(
            principal,
            SendMessageDTO(
                conversation_id=conversation.id,
                client_msg_id=dto.client_msg_id,
                type=dto.type,
                body=dto.body,
                media=dto.media,
                reply_to=dto.reply_to,
            ),
        )

    async def acknowledge_read(
        self, principal: Principal, conversation_id: str, sequence: int
    ) -> AckResult:
        async with self._uow_factory() as uow:
            conversation = await uow.conversations.get_by_id(conversation_id)
            await assert_conversation_access(principal.user_id, conversation, uow.participants)
        return await self.reconciler.acknowledge_read(
            conversation_id, principal.user_id, sequence
        )

    def release_conversation(self, conversation_id: str) -> None:
        self.fanout.release_conversation(conversation_id)

    # -- cross-node -----------------------------------------------------------

    async def handle_remote_event(self, event_type: str, data: dict[str, Any]) -> None:
        """Apply an event relayed from another node. Own events are ignored."""
        if data.get("origin") == self.node_id:
            return
        if event_type == message_created.EVENT_TYPE:
            message = MessageCreated.from_payload(data).message
            await self.fanout.publish(message.conversation_id, message)
            await self.index.refresh(message.conversation_id)
        elif event_type == cursor_advanced.EVENT_TYPE:
            await self.reconciler.apply_remote(CursorAdvanced.from_payload(data))
        elif event_type == conversation_created.EVENT_TYPE:
            await self.index.refresh(data["conversation_id"])
        elif event_type == presence_changed.EVENT_TYPE:
            await self.presence.apply_remote(
                PresenceChanged.from_payload(data), str(data.get("origin") or "")
            )
        else:
            logger.debug("Ignoring relayed event %s", event_type)
