"""Client-side view of the conversations a user follows.

Feed it every event received on the WebSocket via ``ClientReplica.handle``.
Confirmed messages are keyed by sequence, so duplicate deliveries collapse;
outgoing messages live in a pending overlay keyed by ``client_msg_id`` until
the server confirms them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any
from uuid import UUID

from chat_sync.domain.entities.message import MediaRef, Message
from chat_sync.domain.value_objects.enums import MessageStatus, MessageType

logger = logging.getLogger(__name__)


class PendingState(StrEnum):
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


@dataclass(slots=True)
class PendingMessage:
    client_msg_id: UUID
    conversation_id: str
    type: MessageType
    body: str | None
    media: MediaRef | None = None
    state: PendingState = PendingState.SENDING
    error: str | None = None
    sequence: int | None = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(slots=True)
class ConversationReplica:
    conversation_id: str
    messages: dict[int, Message] = field(default_factory=dict)
    statuses: dict[int, MessageStatus] = field(default_factory=dict)
    summary: dict[str, Any] | None = None

    @property
    def last_seen_sequence(self) -> int:
        """Highest contiguous sequence held locally; resubscribe from here."""
        seq = 0
        while seq + 1 in self.messages:
            seq += 1
        return seq

    def ordered(self) -> list[Message]:
        return [self.messages[s] for s in sorted(self.messages)]


class ClientReplica:
    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.conversations: dict[str, ConversationReplica] = {}
        self.pending: dict[UUID, PendingMessage] = {}
        self.presence: dict[str, dict[str, Any]] = {}

    def conversation(self, conversation_id: str) -> ConversationReplica:
        replica = self.conversations.get(conversation_id)
        if replica is None:
            replica = ConversationReplica(conversation_id=conversation_id)
            self.conversations[conversation_id] = replica
        return replica

    def since(self, conversation_id: str) -> int:
        replica = self.conversations.get(conversation_id)
        return replica.last_seen_sequence if replica else 0

    # -- outgoing -------------------------------------------------------------

    def begin_send(
        self,
        conversation_id: str,
        client_msg_id: UUID,
        *,
        type: MessageType = MessageType.TEXT,
        body: str | None = None,
        media: MediaRef | None = None,
    ) -> PendingMessage:
        pending = self.pending.get(client_msg_id)
        if pending is not None and pending.state != PendingState.FAILED:
            return pending
        pending = PendingMessage(
            client_msg_id=client_msg_id,
            conversation_id=conversation_id,
            type=type,
            body=body,
            media=media,
        )
        self.pending[client_msg_id] = pending
        return pending

    def fail_send(self, client_msg_id: UUID, reason: str) -> None:
        pending = self.pending.get(client_msg_id)
        if pending is not None and pending.state == PendingState.SENDING:
            pending.state = PendingState.FAILED
            pending.error = reason

    # -- incoming -------------------------------------------------------------

    def handle(self, event_type: str, data: dict[str, Any]) -> None:
        if event_type == "message.created":
            self.apply_message(Message.from_dict(data["message"]))
        elif event_type == "message.sent":
            self._confirm(UUID(str(data["client_msg_id"])), Message.from_dict(data["message"]))
        elif event_type == "message.status":
            self.apply_status(
                data["conversation_id"],
                data["sender_id"],
                MessageStatus(data["status"]),
                int(data["from_sequence"]),
                int(data["to_sequence"]),
            )
        elif event_type == "conversation.updated":
            self.conversation(data["conversation_id"]).summary = data
        elif event_type == "presence.updated":
            self.presence[data["user_id"]] = data
        elif event_type == "resync_required":
            self.reset(data["conversation_id"])
        else:
            logger.debug("Replica ignoring %s", event_type)

    def apply_message(self, message: Message) -> bool:
        """Insert a confirmed message. Returns False for a duplicate sequence."""
        replica = self.conversation(message.conversation_id)
        if message.sequence in replica.messages:
            return False
        replica.messages[message.sequence] = message
        if message.sender_id == self.user_id:
            replica.statuses.setdefault(message.sequence, MessageStatus.SENT)
            pending = self.pending.get(message.client_msg_id)
            if pending is not None:
                self._settle(pending, message)
        return True

    def apply_status(
        self,
        conversation_id: str,
        sender_id: str,
        status: MessageStatus,
        from_sequence: int,
        to_sequence: int,
    ) -> int:
        """Raise the status of own messages in ``(from_sequence, to_sequence]``."""
        if sender_id != self.user_id:
            return 0
        replica = self.conversation(conversation_id)
        changed = 0
        for seq in range(from_sequence + 1, to_sequence + 1):
            message = replica.messages.get(seq)
            if message is None or message.sender_id != self.user_id:
                continue
            current = replica.statuses.get(seq, MessageStatus.SENT)
            if status.rank > current.rank:
                replica.statuses[seq] = status
                changed += 1
        return changed

    def reset(self, conversation_id: str) -> None:
        """Forget local state so the next subscribe replays from the start."""
        replica = self.conversations.get(conversation_id)
        if replica is not None:
            replica.messages.clear()
            replica.statuses.clear()

    def timeline(self, conversation_id: str) -> list[Message | PendingMessage]:
        """Confirmed messages in order, followed by unconfirmed own messages."""
        replica = self.conversations.get(conversation_id)
        confirmed: list[Message | PendingMessage] = list(replica.ordered()) if replica else []
        overlay = sorted(
            (
                p for p in self.pending.values()
                if p.conversation_id == conversation_id and p.state != PendingState.SENT
            ),
            key=lambda p: p.created_at,
        )
        return confirmed + overlay

    def status_of(self, conversation_id: str, sequence: int) -> MessageStatus | None:
        replica = self.conversations.get(conversation_id)
        return replica.statuses.get(sequence) if replica else None

    def _confirm(self, client_msg_id: UUID, message: Message) -> None:
        self.apply_message(message)
        pending = self.pending.get(client_msg_id)
        if pending is not None:
            self._settle(pending, message)

    @staticmethod
    def _settle(pending: PendingMessage, message: Message) -> None:
        pending.state = PendingState.SENT
        pending.sequence = message.sequence
        pending.error = None
