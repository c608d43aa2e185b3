"""Shared test fixtures: an in-memory store with transactional fake repositories."""
from __future__ import annotations

import asyncio
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import TracebackType
from typing import Any
from uuid import UUID

import pytest

from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import ConflictError
from chat_sync.application.repositories.outbox import OutboxRecord
from chat_sync.domain.entities.conversation import Conversation
from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.domain.entities.message import MediaRef, Message
from chat_sync.domain.entities.participant import Participant
from chat_sync.domain.value_objects.enums import ConversationKind, CursorType, MessageType
from chat_sync.services.engine import SyncEngine
from chat_sync.services.sequence_allocator import SequenceAllocator

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def alice() -> Principal:
    return Principal(user_id="alice", display_name="Alice")


@pytest.fixture
def bob() -> Principal:
    return Principal(user_id="bob", display_name="Bob")


@pytest.fixture
def carol() -> Principal:
    return Principal(user_id="carol", display_name="Carol")


def make_conversation(
    conversation_id: str = "alice_bob",
    *,
    kind: str = ConversationKind.DIRECT,
    title: str | None = None,
    created_by: str = "alice",
    last_sequence: int = 0,
    created_at: datetime = T0,
) -> Conversation:
    return Conversation(
        id=conversation_id,
        kind=str(kind),
        title=title,
        created_by=created_by,
        last_sequence=last_sequence,
        created_at=created_at,
    )


def make_message(
    conversation_id: str = "alice_bob",
    sequence: int = 1,
    *,
    sender_id: str = "alice",
    body: str | None = "hello",
    msg_type: str = MessageType.TEXT,
    media: MediaRef | None = None,
    message_id: UUID | None = None,
    created_at: datetime | None = None,
) -> Message:
    return Message(
        id=message_id or uuid.uuid4(),
        conversation_id=conversation_id,
        sequence=sequence,
        sender_id=sender_id,
        sender_name=sender_id.title(),
        type=str(msg_type),
        body=body,
        media=media,
        reply_to=None,
        client_msg_id=uuid.uuid4(),
        created_at=created_at or T0 + timedelta(seconds=sequence),
    )


def make_media(content_type: str = "image/png") -> MediaRef:
    return MediaRef(
        url="https://cdn.example.com/chat/media/pic.png",
        public_id="media_1700000000000_abc",
        resource_type="image",
        content_type=content_type,
        size_bytes=1024,
        file_name="pic.png",
    )


# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


@dataclass
class InMemoryStore:
    """Committed state shared by every FakeUoW.

    The sequence counter behaves like a locked row: a successful
    compare-and-set holds the conversation lock until commit or rollback.
    """

    conversations: dict[str, Conversation] = field(default_factory=dict)
    participants: list[Participant] = field(default_factory=list)
    messages: dict[str, list[Message]] = field(default_factory=dict)
    cursors: dict[tuple[str, str], ParticipantCursor] = field(default_factory=dict)
    outbox: list[OutboxRecord] = field(default_factory=list)
    outbox_status: dict[int, str] = field(default_factory=dict)
    row_locks: dict[str, asyncio.Lock] = field(default_factory=dict)
    # failure injection
    fail_read_range: int = 0
    hidden_sequences: set[tuple[str, int]] = field(default_factory=set)
    fail_append: int = 0
    commits: int = 0

    def lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self.row_locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self.row_locks[conversation_id] = lock
        return lock

    def add_conversation(self, conversation: Conversation, members: list[str]) -> Conversation:
        self.conversations[conversation.id] = conversation
        for user_id in members:
            self.participants.append(
                Participant(
                    conversation_id=conversation.id,
                    user_id=user_id,
                    joined_at=conversation.created_at,
                )
            )
        return conversation

    def add_messages(self, *messages: Message) -> None:
        for m in messages:
            self.messages.setdefault(m.conversation_id, []).append(m)
            self.messages[m.conversation_id].sort(key=lambda x: x.sequence)
            conv = self.conversations[m.conversation_id]
            if m.sequence > conv.last_sequence:
                self.conversations[m.conversation_id] = replace(conv, last_sequence=m.sequence)

    def log(self, conversation_id: str) -> list[Message]:
        return list(self.messages.get(conversation_id, []))

    def cursor(self, conversation_id: str, participant_id: str) -> ParticipantCursor:
        return self.cursors.get(
            (conversation_id, participant_id),
            ParticipantCursor(conversation_id=conversation_id, participant_id=participant_id),
        )


class FakeConversationReader:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def get_by_id(self, conversation_id: str) -> Conversation | None:
        uow = self._uow
        conv = uow.new_conversations.get(conversation_id) or uow.store.conversations.get(
            conversation_id
        )
        if conv is None:
            return None
        if conversation_id in uow.sequence_overrides:
            conv = replace(conv, last_sequence=uow.sequence_overrides[conversation_id])
        return conv

    async def list_for_user(self, user_id: str) -> list[Conversation]:
        ids = [
            p.conversation_id
            for p in self._uow.all_participants()
            if p.user_id == user_id
        ]
        result = []
        for cid in ids:
            conv = await self.get_by_id(cid)
            if conv is not None:
                result.append(conv)
        return result


class FakeConversationWriter:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def create(self, conversation: Conversation) -> Conversation:
        uow = self._uow
        if conversation.id in uow.store.conversations or conversation.id in uow.new_conversations:
            raise ConflictError(f"Conversation {conversation.id} already exists")
        uow.new_conversations[conversation.id] = conversation
        return conversation

    async def compare_and_set_sequence(self, conversation_id: str, expected: int, new: int) -> bool:
        uow = self._uow
        if conversation_id in uow.new_conversations:
            current = uow.sequence_overrides.get(
                conversation_id, uow.new_conversations[conversation_id].last_sequence
            )
            if current != expected:
                return False
            uow.sequence_overrides[conversation_id] = new
            return True

        if conversation_id not in uow.store.conversations:
            return False
        if conversation_id not in uow.held_locks:
            lock = uow.store.lock_for(conversation_id)
            await lock.acquire()
            uow.held_locks[conversation_id] = lock
        current = uow.sequence_overrides.get(
            conversation_id, uow.store.conversations[conversation_id].last_sequence
        )
        if current != expected:
            if conversation_id not in uow.sequence_overrides:
                uow.held_locks.pop(conversation_id).release()
            return False
        uow.sequence_overrides[conversation_id] = new
        return True


class FakeParticipantReader:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        return any(
            p.conversation_id == conversation_id and p.user_id == user_id
            for p in self._uow.all_participants()
        )

    async def list_participants(self, conversation_id: str) -> list[Participant]:
        return [p for p in self._uow.all_participants() if p.conversation_id == conversation_id]


class FakeParticipantWriter:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def add(self, participant: Participant) -> None:
        self._uow.new_participants.append(participant)


class FakeMessageReader:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def read_range(
        self,
        conversation_id: str,
        after_sequence: int,
        to_sequence: int | None = None,
        *,
        limit: int = 100,
    ) -> list[Message]:
        store = self._uow.store
        if store.fail_read_range > 0:
            store.fail_read_range -= 1
            raise RuntimeError("store unavailable")
        rows = [
            m for m in self._uow.all_messages(conversation_id)
            if m.sequence > after_sequence
            and (to_sequence is None or m.sequence <= to_sequence)
            and (conversation_id, m.sequence) not in store.hidden_sequences
        ]
        return sorted(rows, key=lambda m: m.sequence)[:limit]

    async def get_by_id(self, message_id: UUID) -> Message | None:
        for m in self._uow.every_message():
            if m.id == message_id:
                return m
        return None

    async def get_latest(self, conversation_id: str) -> Message | None:
        rows = self._uow.all_messages(conversation_id)
        return max(rows, key=lambda m: m.sequence) if rows else None

    async def get_by_client_msg_id(
        self, conversation_id: str, sender_id: str, client_msg_id: UUID
    ) -> Message | None:
        for m in self._uow.all_messages(conversation_id):
            if m.sender_id == sender_id and m.client_msg_id == client_msg_id:
                return m
        return None


class FakeMessageWriter:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def append(self, message: Message) -> Message:
        store = self._uow.store
        if store.fail_append > 0:
            store.fail_append -= 1
            raise RuntimeError("disk full")
        for m in self._uow.all_messages(message.conversation_id):
            if m.sequence == message.sequence or (
                m.sender_id == message.sender_id and m.client_msg_id == message.client_msg_id
            ):
                raise ConflictError("duplicate message")
        self._uow.new_messages.append(message)
        return message


class FakeCursorReader:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def get(self, conversation_id: str, participant_id: str) -> ParticipantCursor | None:
        key = (conversation_id, participant_id)
        return self._uow.cursor_overlay.get(key) or self._uow.store.cursors.get(key)

    async def list_for_conversation(self, conversation_id: str) -> list[ParticipantCursor]:
        merged = {**self._uow.store.cursors, **self._uow.cursor_overlay}
        return [c for (cid, _), c in merged.items() if cid == conversation_id]

    async def list_for_participant(self, participant_id: str) -> list[ParticipantCursor]:
        merged = {**self._uow.store.cursors, **self._uow.cursor_overlay}
        return [c for (_, pid), c in merged.items() if pid == participant_id]


class FakeCursorWriter:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def upsert_cursor(
        self,
        conversation_id: str,
        participant_id: str,
        cursor_type: CursorType,
        sequence: int,
    ) -> None:
        key = (conversation_id, participant_id)
        current = self._uow.cursor_overlay.get(key) or self._uow.store.cursor(*key)
        self._uow.cursor_overlay[key] = current.advance(cursor_type, sequence)


class FakeOutboxWriter:
    def __init__(self, uow: FakeUoW) -> None:
        self._uow = uow

    async def add(self, event_type: str, payload: dict[str, Any]) -> None:
        self._uow.new_outbox.append((event_type, payload))

    async def fetch_pending(self, batch_size: int) -> list[OutboxRecord]:
        store = self._uow.store
        pending = [
            r for r in store.outbox
            if store.outbox_status.get(r.id, "pending") in ("pending", "failed")
        ]
        return pending[:batch_size]

    async def mark_sent(self, ids: list[int]) -> None:
        for i in ids:
            self._uow.status_updates[i] = "sent"

    async def mark_failed(self, record_id: int, next_retry_at: datetime) -> None:
        self._uow.status_updates[record_id] = "failed"

    async def mark_dead(self, record_id: int) -> None:
        self._uow.status_updates[record_id] = "dead"


class FakeUoW:
    """In-memory UoW for unit tests. Writes become visible to others on commit."""

    def __init__(self, store: InMemoryStore | None = None) -> None:
        self.store = store or InMemoryStore()
        self.conversations = FakeConversationReader(self)
        self.conversations_w = FakeConversationWriter(self)
        self.participants = FakeParticipantReader(self)
        self.participants_w = FakeParticipantWriter(self)
        self.messages = FakeMessageReader(self)
        self.messages_w = FakeMessageWriter(self)
        self.cursors = FakeCursorReader(self)
        self.cursors_w = FakeCursorWriter(self)
        self.outbox = FakeOutboxWriter(self)
        self._reset()
        self.committed = False
        self.rolled_back = False

    def _reset(self) -> None:
        self.new_conversations: dict[str, Conversation] = {}
        self.new_participants: list[Participant] = []
        self.new_messages: list[Message] = []
        self.cursor_overlay: dict[tuple[str, str], ParticipantCursor] = {}
        self.new_outbox: list[tuple[str, dict[str, Any]]] = []
        self.status_updates: dict[int, str] = {}
        self.sequence_overrides: dict[str, int] = {}
        self.held_locks: dict[str, asyncio.Lock] = {}

    def all_participants(self) -> list[Participant]:
        return self.store.participants + self.new_participants

    def all_messages(self, conversation_id: str) -> list[Message]:
        own = [m for m in self.new_messages if m.conversation_id == conversation_id]
        return self.store.log(conversation_id) + own

    def every_message(self) -> list[Message]:
        committed = [m for rows in self.store.messages.values() for m in rows]
        return committed + self.new_messages

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        store = self.store
        store.conversations.update(self.new_conversations)
        for cid, seq in self.sequence_overrides.items():
            store.conversations[cid] = replace(store.conversations[cid], last_sequence=seq)
        store.participants.extend(self.new_participants)
        for m in self.new_messages:
            store.messages.setdefault(m.conversation_id, []).append(m)
            store.messages[m.conversation_id].sort(key=lambda x: x.sequence)
        for key, cursor in self.cursor_overlay.items():
            store.cursors[key] = store.cursor(*key).merge(cursor)
        for event_type, payload in self.new_outbox:
            record_id = len(store.outbox) + 1
            store.outbox.append(
                OutboxRecord(id=record_id, event_type=event_type, payload=payload, attempts=0)
            )
        store.outbox_status.update(self.status_updates)
        store.commits += 1
        self._release()
        self.committed = True

    async def rollback(self) -> None:
        self._release()
        self.rolled_back = True

    def _release(self) -> None:
        for lock in self.held_locks.values():
            lock.release()
        self._reset()

    async def __aenter__(self) -> FakeUoW:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.rollback()
        else:
            # Uncommitted work is discarded, like closing a session.
            self._release()


class UoWFactory:
    """UnitOfWorkFactory over one store that remembers the units it opened."""

    def __init__(self, store: InMemoryStore) -> None:
        self.store = store
        self.opened: list[FakeUoW] = []

    def __call__(self) -> FakeUoW:
        uow = FakeUoW(self.store)
        self.opened.append(uow)
        return uow


class RecordingSink:
    """DeliverySink that records events and can be told to fail."""

    def __init__(self, *, fail_times: int = 0, always_fail: bool = False) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.closed = False
        self.close_code: int | None = None

    async def send(self, event_type: str, data: dict[str, Any]) -> None:
        if self.always_fail:
            raise ConnectionError("socket gone")
        if self.fail_times > 0:
            self.fail_times -= 1
            raise ConnectionError("transient")
        self.events.append((event_type, data))

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed = True
        self.close_code = code

    def of_type(self, event_type: str) -> list[dict[str, Any]]:
        return [data for t, data in self.events if t == event_type]

    def sequences(self, conversation_id: str | None = None) -> list[int]:
        return [
            data["sequence"]
            for data in self.of_type("message.created")
            if conversation_id is None or data["conversation_id"] == conversation_id
        ]


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def uow_factory(store: InMemoryStore) -> UoWFactory:
    return UoWFactory(store)


@pytest.fixture
def engine(uow_factory: UoWFactory) -> SyncEngine:
    return SyncEngine(
        uow_factory,
        allocator=SequenceAllocator(max_attempts=100, backoff_seconds=0),
        node_id="node-test",
        send_backoff_seconds=0,
        replay_page_size=3,
    )


@pytest.fixture
def direct_chat(store: InMemoryStore) -> Conversation:
    return store.add_conversation(make_conversation("alice_bob"), ["alice", "bob"])


@pytest.fixture
def group_chat(store: InMemoryStore) -> Conversation:
    return store.add_conversation(
        make_conversation("group_abc", kind=ConversationKind.GROUP, title="Trip"),
        ["alice", "bob", "carol"],
    )
