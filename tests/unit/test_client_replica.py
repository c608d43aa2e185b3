from __future__ import annotations

import uuid
from dataclasses import replace

import pytest

from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.client.replica import ClientReplica, PendingMessage, PendingState
from chat_sync.domain.value_objects.enums import MessageStatus
from tests.conftest import RecordingSink, make_message


def _created(message):
    return {
        "conversation_id": message.conversation_id,
        "sequence": message.sequence,
        "message": message.to_dict(),
    }


def test_duplicate_deliveries_collapse():
    replica = ClientReplica("bob")
    message = make_message(sequence=1)

    replica.handle("message.created", _created(message))
    replica.handle("message.created", _created(message))

    assert [m.sequence for m in replica.timeline("alice_bob")] == [1]


def test_out_of_order_arrivals_render_in_order():
    replica = ClientReplica("bob")
    for seq in (3, 1, 2):
        replica.apply_message(make_message(sequence=seq))

    assert [m.sequence for m in replica.conversation("alice_bob").ordered()] == [1, 2, 3]
    assert replica.since("alice_bob") == 3


def test_since_stops_at_first_hole():
    replica = ClientReplica("bob")
    for seq in (1, 2, 4):
        replica.apply_message(make_message(sequence=seq))
    assert replica.since("alice_bob") == 2
    assert replica.since("unknown") == 0


def test_pending_overlay_until_confirmed():
    replica = ClientReplica("alice")
    client_msg_id = uuid.uuid4()
    replica.begin_send("alice_bob", client_msg_id, body="hi")

    (pending,) = replica.timeline("alice_bob")
    assert isinstance(pending, PendingMessage)
    assert pending.state == PendingState.SENDING

    stored = replace(
        make_message(sequence=1, sender_id="alice", body="hi"), client_msg_id=client_msg_id
    )
    replica.handle(
        "message.sent", {"client_msg_id": str(client_msg_id), "message": stored.to_dict()}
    )

    timeline = replica.timeline("alice_bob")
    assert [m.sequence for m in timeline] == [1]
    assert replica.pending[client_msg_id].state == PendingState.SENT
    assert replica.pending[client_msg_id].sequence == 1
    assert replica.status_of("alice_bob", 1) == MessageStatus.SENT


def test_failed_send_stays_visible_and_can_retry():
    replica = ClientReplica("alice")
    client_msg_id = uuid.uuid4()
    replica.begin_send("alice_bob", client_msg_id, body="hi")
    replica.fail_send(client_msg_id, "contention")

    (failed,) = replica.timeline("alice_bob")
    assert failed.state == PendingState.FAILED
    assert failed.error == "contention"

    retry = replica.begin_send("alice_bob", client_msg_id, body="hi")
    assert retry.state == PendingState.SENDING


def test_status_only_moves_forward_for_own_messages():
    replica = ClientReplica("alice")
    replica.apply_message(make_message(sequence=1, sender_id="alice"))
    replica.apply_message(make_message(sequence=2, sender_id="bob"))
    replica.apply_message(make_message(sequence=3, sender_id="alice"))

    changed = replica.apply_status("alice_bob", "alice", MessageStatus.READ, 0, 3)
    assert changed == 2
    assert replica.status_of("alice_bob", 1) == MessageStatus.READ
    assert replica.status_of("alice_bob", 2) is None

    assert replica.apply_status("alice_bob", "alice", MessageStatus.DELIVERED, 0, 3) == 0
    assert replica.status_of("alice_bob", 3) == MessageStatus.READ
    assert replica.apply_status("alice_bob", "bob", MessageStatus.READ, 0, 3) == 0


def test_status_event_from_wire():
    replica = ClientReplica("alice")
    replica.apply_message(make_message(sequence=1, sender_id="alice"))
    replica.handle(
        "message.status",
        {
            "conversation_id": "alice_bob",
            "sender_id": "alice",
            "status": "delivered",
            "from_sequence": 0,
            "to_sequence": 1,
        },
    )
    assert replica.status_of("alice_bob", 1) == MessageStatus.DELIVERED


def test_resync_clears_conversation():
    replica = ClientReplica("bob")
    replica.apply_message(make_message(sequence=1))
    replica.handle("conversation.updated", {"conversation_id": "alice_bob", "unread_count": 1})

    replica.handle("resync_required", {"conversation_id": "alice_bob"})

    assert replica.since("alice_bob") == 0
    assert replica.conversation("alice_bob").summary["unread_count"] == 1


@pytest.mark.asyncio
async def test_reconnecting_sender_learns_status_of_old_messages(engine, direct_chat, alice):
    for n in range(3):
        await engine.send_message(
            alice,
            SendMessageDTO(
                conversation_id=direct_chat.id, client_msg_id=uuid.uuid4(), body=f"#{n}"
            ),
        )
    await engine.reconciler.mark_delivered(direct_chat.id, "bob", 3)
    await engine.reconciler.acknowledge_read(direct_chat.id, "bob", 2)

    sink = RecordingSink()
    engine.connect("c-alice", "alice", sink)
    await engine.subscribe("c-alice", direct_chat.id, 0)

    replica = ClientReplica("alice")
    for event_type, data in sink.events:
        replica.handle(event_type, data)

    assert [replica.status_of(direct_chat.id, seq) for seq in (1, 2, 3)] == [
        MessageStatus.READ,
        MessageStatus.READ,
        MessageStatus.DELIVERED,
    ]


def test_presence_keeps_latest_state_per_user():
    replica = ClientReplica("bob")
    replica.handle("presence.updated", {"user_id": "alice", "online": True, "last_seen": None})
    replica.handle(
        "presence.updated",
        {"user_id": "alice", "online": False, "last_seen": "2024-05-01T12:05:00+00:00"},
    )

    assert replica.presence["alice"]["online"] is False
    assert replica.presence["alice"]["last_seen"] == "2024-05-01T12:05:00+00:00"
