"""Sender-visible message status derived from participant cursors.

A message sent by S is ``read`` once every other participant's read cursor has
passed it, ``delivered`` once at least one other participant's delivered cursor
has, and ``sent`` otherwise. Both thresholds are per-sender "frontiers", so a
cursor move translates into a contiguous range of status changes.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from chat_sync.domain.entities.cursor import ParticipantCursor
from chat_sync.domain.events.status_advanced import StatusAdvanced
from chat_sync.domain.value_objects.enums import MessageStatus


@dataclass(frozen=True, slots=True)
class Frontier:
    delivered_up_to: int
    read_up_to: int

    def status_of(self, sequence: int) -> MessageStatus:
        if sequence <= self.read_up_to:
            return MessageStatus.READ
        if sequence <= self.delivered_up_to:
            return MessageStatus.DELIVERED
        return MessageStatus.SENT


def sender_frontier(
    sender_id: str,
    participant_ids: Iterable[str],
    cursors: Mapping[str, ParticipantCursor],
) -> Frontier:
    others = [p for p in participant_ids if p != sender_id]
    if not others:
        return Frontier(delivered_up_to=0, read_up_to=0)
    delivered = [_cursor(cursors, p).delivered_seq for p in others]
    read = [_cursor(cursors, p).read_seq for p in others]
    return Frontier(delivered_up_to=max(delivered), read_up_to=min(read))


def message_status(
    sender_id: str,
    sequence: int,
    participant_ids: Iterable[str],
    cursors: Mapping[str, ParticipantCursor],
) -> MessageStatus:
    return sender_frontier(sender_id, participant_ids, cursors).status_of(sequence)


def frontier_events(
    conversation_id: str, sender_id: str, frontier: Frontier
) -> list[StatusAdvanced]:
    """The whole frontier as ranges from zero, for a client that starts from scratch."""
    events: list[StatusAdvanced] = []
    if frontier.delivered_up_to > frontier.read_up_to:
        events.append(
            StatusAdvanced(
                conversation_id=conversation_id,
                sender_id=sender_id,
                status=MessageStatus.DELIVERED,
                from_sequence=frontier.read_up_to,
                to_sequence=frontier.delivered_up_to,
            )
        )
    if frontier.read_up_to > 0:
        events.append(
            StatusAdvanced(
                conversation_id=conversation_id,
                sender_id=sender_id,
                status=MessageStatus.READ,
                from_sequence=0,
                to_sequence=frontier.read_up_to,
            )
        )
    return events


def status_transitions(
    conversation_id: str,
    participant_ids: list[str],
    before: Mapping[str, ParticipantCursor],
    after: Mapping[str, ParticipantCursor],
) -> list[StatusAdvanced]:
    """Ranges of messages whose status moved forward between two cursor states.

    The ranges cover sequence numbers only; the receiving sender filters them
    down to its own messages.
    """
    events: list[StatusAdvanced] = []
    for sender in participant_ids:
        old = sender_frontier(sender, participant_ids, before)
        new = sender_frontier(sender, participant_ids, after)
        if new.delivered_up_to > old.delivered_up_to:
            # Part of the delivered range may have jumped straight to read.
            low = max(old.delivered_up_to, new.read_up_to)
            if new.delivered_up_to > low:
                events.append(
                    StatusAdvanced(
                        conversation_id=conversation_id,
                        sender_id=sender,
                        status=MessageStatus.DELIVERED,
                        from_sequence=low,
                        to_sequence=new.delivered_up_to,
                    )
                )
        if new.read_up_to > old.read_up_to:
            events.append(
                StatusAdvanced(
                    conversation_id=conversation_id,
                    sender_id=sender,
                    status=MessageStatus.READ,
                    from_sequence=old.read_up_to,
                    to_sequence=new.read_up_to,
                )
            )
    return events


def _cursor(cursors: Mapping[str, ParticipantCursor], participant_id: str) -> ParticipantCursor:
    cursor = cursors.get(participant_id)
    if cursor is None:
        return ParticipantCursor(conversation_id="", participant_id=participant_id)
    return cursor
