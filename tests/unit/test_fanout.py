from __future__ import annotations

import asyncio

import pytest

from chat_sync.application.exceptions import (
    ForbiddenError,
    GapReplayError,
    InvariantViolation,
    NotFoundError,
    UnknownConversationError,
    ValidationError,
)
from chat_sync.services import fanout as fanout_module
from chat_sync.services.fanout import DeliveryFanout
from chat_sync.services.subscriptions import SubscriptionManager
from tests.conftest import FakeParticipantReader, RecordingSink, make_message


class DeliveryLog:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, int]] = []

    async def __call__(self, conversation_id: str, user_id: str, sequence: int) -> None:
        self.calls.append((conversation_id, user_id, sequence))


@pytest.fixture
def delivered() -> DeliveryLog:
    return DeliveryLog()


@pytest.fixture
def fanout(uow_factory, delivered) -> DeliveryFanout:
    return DeliveryFanout(
        SubscriptionManager(),
        uow_factory,
        send_attempts=3,
        backoff_seconds=0,
        page_size=2,
        on_delivered=delivered,
    )


def _connect(fanout: DeliveryFanout, connection_id: str, user_id: str, **sink_kw) -> RecordingSink:
    sink = RecordingSink(**sink_kw)
    fanout._subscriptions.open(connection_id, user_id, sink)
    return sink


def _seed(store, conversation_id: str, count: int, sender_id: str = "alice"):
    messages = [
        make_message(conversation_id, seq, sender_id=sender_id, body=f"m{seq}")
        for seq in range(1, count + 1)
    ]
    store.add_messages(*messages)
    return messages


@pytest.mark.asyncio
async def test_subscribe_replays_history_in_pages(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 5)
    sink = _connect(fanout, "c1", "bob")

    result = await fanout.subscribe("c1", direct_chat.id, 0)

    assert result.replayed == 5
    assert result.latest_sequence == 5
    assert sink.sequences() == [1, 2, 3, 4, 5]


@pytest.mark.asyncio
async def test_subscribe_from_position_skips_known_messages(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 5)
    sink = _connect(fanout, "c1", "bob")

    result = await fanout.subscribe("c1", direct_chat.id, 3)

    assert result.replayed == 2
    assert sink.sequences() == [4, 5]


@pytest.mark.asyncio
async def test_subscribe_at_latest_replays_nothing(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 2)
    sink = _connect(fanout, "c1", "bob")

    result = await fanout.subscribe("c1", direct_chat.id, 2)

    assert result.replayed == 0
    assert sink.events == []


@pytest.mark.asyncio
@pytest.mark.parametrize("since", [-1, 3])
async def test_subscribe_rejects_out_of_range_position(fanout, store, direct_chat, since):
    _seed(store, direct_chat.id, 2)
    _connect(fanout, "c1", "bob")

    with pytest.raises(ValidationError):
        await fanout.subscribe("c1", direct_chat.id, since)
    assert fanout._subscriptions.watchers(direct_chat.id) == []


@pytest.mark.asyncio
async def test_subscribe_requires_membership(fanout, direct_chat):
    _connect(fanout, "c1", "mallory")
    with pytest.raises(ForbiddenError):
        await fanout.subscribe("c1", direct_chat.id, 0)


@pytest.mark.asyncio
async def test_subscribe_unknown_conversation_or_connection(fanout, direct_chat):
    _connect(fanout, "c1", "bob")
    with pytest.raises(UnknownConversationError):
        await fanout.subscribe("c1", "ghost_room", 0)
    with pytest.raises(NotFoundError):
        await fanout.subscribe("nope", direct_chat.id, 0)


@pytest.mark.asyncio
async def test_replay_then_live_without_duplicates(fanout, store, direct_chat):
    messages = _seed(store, direct_chat.id, 3)
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)

    # A late publish of an already replayed message is dropped.
    assert await fanout.publish(direct_chat.id, messages[2]) == 0

    new = make_message(direct_chat.id, 4, body="live")
    store.add_messages(new)
    assert await fanout.publish(direct_chat.id, new) == 1
    assert await fanout.publish(direct_chat.id, new) == 0

    assert sink.sequences() == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_live_gap_is_filled_from_store(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)

    messages = _seed(store, direct_chat.id, 4)
    await fanout.publish(direct_chat.id, messages[3])

    assert sink.sequences() == [1, 2, 3, 4]


@pytest.mark.asyncio
async def test_out_of_order_publishes_arrive_in_order(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)

    messages = _seed(store, direct_chat.id, 3)
    for message in (messages[2], messages[0], messages[1]):
        await fanout.publish(direct_chat.id, message)

    assert sink.sequences() == [1, 2, 3]


@pytest.mark.asyncio
async def test_every_watcher_receives_message(fanout, store, group_chat):
    sinks = {
        user: _connect(fanout, f"c-{user}", user) for user in ("alice", "bob", "carol")
    }
    for user in sinks:
        await fanout.subscribe(f"c-{user}", group_chat.id, 0)

    (message,) = _seed(store, group_chat.id, 1)
    assert await fanout.publish(group_chat.id, message) == 3
    for sink in sinks.values():
        assert sink.sequences() == [1]


@pytest.mark.asyncio
async def test_replay_failure_drops_watch(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 3)
    store.fail_read_range = 1
    _connect(fanout, "c1", "bob")

    with pytest.raises(GapReplayError):
        await fanout.subscribe("c1", direct_chat.id, 0)
    assert fanout._subscriptions.watchers(direct_chat.id) == []


@pytest.mark.asyncio
async def test_replay_with_missing_sequence_fails(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 3)
    store.hidden_sequences.add((direct_chat.id, 2))
    sink = _connect(fanout, "c1", "bob")

    with pytest.raises(GapReplayError):
        await fanout.subscribe("c1", direct_chat.id, 0)
    # Nothing past the hole is ever shown.
    assert sink.sequences() == [1]


@pytest.mark.asyncio
async def test_live_gap_failure_requests_resync(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)

    messages = _seed(store, direct_chat.id, 3)
    store.fail_read_range = 1
    assert await fanout.publish(direct_chat.id, messages[2]) == 0

    assert sink.sequences() == []
    assert sink.of_type("resync_required") == [{"conversation_id": direct_chat.id}]
    assert fanout._subscriptions.watchers(direct_chat.id) == []


@pytest.mark.asyncio
async def test_conflicting_ids_halt_conversation(fanout, store, direct_chat):
    _seed(store, direct_chat.id, 1)
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)

    impostor = make_message(direct_chat.id, 1, body="other")
    with pytest.raises(InvariantViolation):
        await fanout.publish(direct_chat.id, impostor)
    assert fanout.is_halted(direct_chat.id)

    with pytest.raises(InvariantViolation):
        await fanout.publish(direct_chat.id, make_message(direct_chat.id, 2))
    with pytest.raises(InvariantViolation):
        await fanout.subscribe("c1", direct_chat.id, 0)
    assert sink.sequences() == [1]

    fanout.release_conversation(direct_chat.id)
    assert not fanout.is_halted(direct_chat.id)
    follow_up = make_message(direct_chat.id, 2)
    store.add_messages(follow_up)
    assert await fanout.publish(direct_chat.id, follow_up) == 1


@pytest.mark.asyncio
async def test_publish_rejects_foreign_message(fanout, direct_chat):
    with pytest.raises(ValidationError):
        await fanout.publish(direct_chat.id, make_message("elsewhere", 1))


@pytest.mark.asyncio
async def test_transient_send_failures_are_retried(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob", fail_times=2)
    await fanout.subscribe("c1", direct_chat.id, 0)

    (message,) = _seed(store, direct_chat.id, 1)
    assert await fanout.publish(direct_chat.id, message) == 1
    assert sink.sequences() == [1]
    assert not sink.closed


@pytest.mark.asyncio
async def test_dead_connection_is_dropped(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob", always_fail=True)
    healthy = _connect(fanout, "c2", "alice")
    await fanout.subscribe("c1", direct_chat.id, 0)
    await fanout.subscribe("c2", direct_chat.id, 0)

    (message,) = _seed(store, direct_chat.id, 1, sender_id="bob")
    assert await fanout.publish(direct_chat.id, message) == 1

    assert sink.closed and sink.close_code == 1011
    assert fanout._subscriptions.get("c1") is None
    assert healthy.sequences() == [1]


@pytest.mark.asyncio
async def test_delivery_reported_for_foreign_messages_only(fanout, store, direct_chat, delivered):
    store.add_messages(
        make_message(direct_chat.id, 1, sender_id="alice"),
        make_message(direct_chat.id, 2, sender_id="bob"),
    )
    _connect(fanout, "c-bob", "bob")
    await fanout.subscribe("c-bob", direct_chat.id, 0)
    assert delivered.calls == [(direct_chat.id, "bob", 1)]

    own = make_message(direct_chat.id, 3, sender_id="bob")
    store.add_messages(own)
    await fanout.publish(direct_chat.id, own)
    assert delivered.calls == [(direct_chat.id, "bob", 1)]

    foreign = make_message(direct_chat.id, 4, sender_id="alice")
    store.add_messages(foreign)
    await fanout.publish(direct_chat.id, foreign)
    assert delivered.calls[-1] == (direct_chat.id, "bob", 4)


@pytest.mark.asyncio
async def test_unsubscribe_stops_delivery(fanout, store, direct_chat):
    sink = _connect(fanout, "c1", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)
    fanout.unsubscribe("c1", direct_chat.id)

    (message,) = _seed(store, direct_chat.id, 1)
    assert await fanout.publish(direct_chat.id, message) == 0
    assert sink.events == []


@pytest.mark.asyncio
async def test_notify_user_reaches_every_connection(fanout):
    first = _connect(fanout, "c1", "bob")
    second = _connect(fanout, "c2", "bob")
    _connect(fanout, "c3", "alice")

    assert await fanout.notify_user("bob", "conversation.updated", {"x": 1}) == 2
    assert first.of_type("conversation.updated") == [{"x": 1}]
    assert second.of_type("conversation.updated") == [{"x": 1}]


@pytest.mark.asyncio
async def test_message_committed_while_subscribing_is_replayed(
    fanout, store, direct_chat, delivered, monkeypatch
):
    checking = asyncio.Event()
    resume = asyncio.Event()
    is_participant = FakeParticipantReader.is_participant

    async def slow_is_participant(self, conversation_id, user_id):
        if not resume.is_set():
            checking.set()
            await resume.wait()
        return await is_participant(self, conversation_id, user_id)

    monkeypatch.setattr(FakeParticipantReader, "is_participant", slow_is_participant)
    sink = _connect(fanout, "c-bob", "bob")

    task = asyncio.create_task(fanout.subscribe("c-bob", direct_chat.id, 0))
    await checking.wait()
    (message,) = _seed(store, direct_chat.id, 1)
    await fanout.publish(direct_chat.id, message)
    resume.set()
    result = await task

    assert result.latest_sequence == 1
    assert sink.sequences() == [1]
    assert delivered.calls == [(direct_chat.id, "bob", 1)]

    later = make_message(direct_chat.id, 2)
    store.add_messages(later)
    await fanout.publish(direct_chat.id, later)
    assert sink.sequences() == [1, 2]


@pytest.mark.asyncio
async def test_idle_conversations_are_forgotten(fanout, store, direct_chat, group_chat):
    _seed(store, direct_chat.id, 1)
    _connect(fanout, "c1", "bob")
    _connect(fanout, "c2", "bob")
    await fanout.subscribe("c1", direct_chat.id, 0)
    await fanout.subscribe("c2", direct_chat.id, 0)
    await fanout.subscribe("c2", group_chat.id, 0)
    (message,) = _seed(store, group_chat.id, 1)
    await fanout.publish(group_chat.id, message)
    assert set(fanout.tracked_conversations()) == {direct_chat.id, group_chat.id}

    fanout.unsubscribe("c1", direct_chat.id)
    assert direct_chat.id in fanout.tracked_conversations()

    fanout.close("c2")
    assert fanout.tracked_conversations() == []


@pytest.mark.asyncio
async def test_tracked_conversations_are_bounded(fanout, store, monkeypatch):
    monkeypatch.setattr(fanout_module, "SEEN_CONVERSATIONS", 2)
    for conversation_id in ("a_b", "a_c", "a_d"):
        await fanout.publish(conversation_id, make_message(conversation_id, 1))

    assert fanout.tracked_conversations() == ["a_c", "a_d"]
