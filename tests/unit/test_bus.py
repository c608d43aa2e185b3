from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone

import pytest

from chat_sync.domain.events.conversation_created import EVENT_TYPE as CONVERSATION_CREATED
from chat_sync.domain.events.message_created import EVENT_TYPE as MESSAGE_CREATED
from chat_sync.domain.events.message_created import MessageCreated
from chat_sync.domain.value_objects.enums import MessageType
from chat_sync.infrastructure.bus.redis_pubsub import RedisPubSubPublisher, RedisPubSubSubscriber
from chat_sync.infrastructure.bus.serializer import deserialize_event, serialize_event
from tests.conftest import RecordingSink, make_message


class FakeRedis:
    def __init__(self) -> None:
        self.published: list[tuple[str, str]] = []

    async def publish(self, channel, raw):
        self.published.append((channel, raw))


def test_serializer_encodes_rich_types():
    ident = uuid.uuid4()
    when = datetime(2024, 5, 1, tzinfo=timezone.utc)
    raw = serialize_event(
        "chat.test",
        {"id": ident, "at": when, "type": MessageType.IMAGE, "text": "привет"},
        origin="node-a",
    )

    assert "привет" in raw
    event, origin, data = deserialize_event(raw)
    assert (event, origin) == ("chat.test", "node-a")
    assert data == {"id": str(ident), "at": when.isoformat(), "type": "image", "text": "привет"}


@pytest.mark.asyncio
async def test_publisher_carries_committing_node():
    redis = FakeRedis()
    await RedisPubSubPublisher(redis).publish(
        "chat.sync", {"event_type": MESSAGE_CREATED, "origin": "node-a", "sequence": 1}
    )

    (channel, raw), = redis.published
    assert channel == "chat.sync"
    assert json.loads(raw)["origin"] == "node-a"
    assert json.loads(raw)["event"] == MESSAGE_CREATED


@pytest.mark.asyncio
async def test_subscriber_skips_own_and_malformed_events():
    received = []

    async def callback(event_type, data):
        received.append((event_type, data["n"]))

    subscriber = RedisPubSubSubscriber(None, "chat.sync", callback, node_id="node-a")
    await subscriber.dispatch(serialize_event("e", {"n": 1}, origin="node-a"))
    await subscriber.dispatch(serialize_event("e", {"n": 2}, origin="node-b"))
    await subscriber.dispatch("not json")
    await subscriber.dispatch("[1, 2]")

    assert received == [("e", 2)]


@pytest.mark.asyncio
async def test_subscriber_survives_callback_errors():
    calls = []

    async def callback(event_type, data):
        calls.append(data["n"])
        raise RuntimeError("boom")

    subscriber = RedisPubSubSubscriber(None, "chat.sync", callback)
    await subscriber.dispatch(serialize_event("e", {"n": 1}))
    await subscriber.dispatch(serialize_event("e", {"n": 2}))

    assert calls == [1, 2]


@pytest.mark.asyncio
async def test_remote_message_reaches_local_watchers(engine, store, direct_chat):
    sink = RecordingSink()
    engine.connect("c-bob", "bob", sink)
    await engine.subscribe("c-bob", direct_chat.id, 0)

    # Committed on another node: the store already holds it.
    message = make_message(direct_chat.id, 1, sender_id="alice")
    store.add_messages(message)
    payload = {**MessageCreated(message).to_payload(), "origin": "node-other"}

    await engine.handle_remote_event(MESSAGE_CREATED, payload)
    await engine.handle_remote_event(MESSAGE_CREATED, payload)

    assert sink.sequences() == [1]
    assert sink.of_type("conversation.updated")
    # Receipt on this node moves bob's delivered cursor.
    assert store.cursor(direct_chat.id, "bob").delivered_seq == 1


@pytest.mark.asyncio
async def test_own_origin_is_ignored(engine, store, direct_chat):
    sink = RecordingSink()
    engine.connect("c-bob", "bob", sink)
    await engine.handle_remote_event(
        CONVERSATION_CREATED, {"conversation_id": direct_chat.id, "origin": engine.node_id}
    )
    assert sink.events == []

    await engine.handle_remote_event(
        CONVERSATION_CREATED, {"conversation_id": direct_chat.id, "origin": "node-other"}
    )
    assert len(sink.of_type("conversation.updated")) == 1
