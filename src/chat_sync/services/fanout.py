"""Delivery fan-out: pushes sequenced messages to watching connections.

Each (connection, conversation) pair has a delivery lock and a
``last_delivered`` position. Replay and live pushes for the pair both run
under that lock, so a client sees every sequence exactly once and in order:
anything at or below ``last_delivered`` is dropped, anything past
``last_delivered + 1`` first pulls the missing range from the store.
"""
from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from chat_sync.application.exceptions import (
    GapReplayError,
    InvariantViolation,
    NotFoundError,
    ValidationError,
)
from chat_sync.application.policies.permissions import assert_conversation_access
from chat_sync.application.uow import UnitOfWorkFactory
from chat_sync.domain.entities.message import Message
from chat_sync.services.subscriptions import Connection, SubscriptionManager, Watch

logger = logging.getLogger(__name__)

# Recently seen (sequence -> message id) pairs kept per conversation.
SEEN_WINDOW = 1024
# Conversations tracked at once; the least recently active is forgotten first.
SEEN_CONVERSATIONS = 4096

DeliveredCallback = Callable[[str, str, int], Awaitable[Any]]


@dataclass(frozen=True, slots=True)
class SubscribeResult:
    conversation_id: str
    since_sequence: int
    latest_sequence: int
    replayed: int


class DeliveryFanout:
    def __init__(
        self,
        subscriptions: SubscriptionManager,
        uow_factory: UnitOfWorkFactory,
        *,
        send_attempts: int = 3,
        backoff_seconds: float = 0.05,
        page_size: int = 200,
        on_delivered: DeliveredCallback | None = None,
    ) -> None:
        self._subscriptions = subscriptions
        self._uow_factory = uow_factory
        self._send_attempts = max(1, send_attempts)
        self._backoff = backoff_seconds
        self._page_size = page_size
        self.on_delivered = on_delivered
        self._seen: OrderedDict[str, OrderedDict[int, Any]] = OrderedDict()
        self._halted: dict[str, str] = {}

    # -- conversation guard ---------------------------------------------------

    def is_halted(self, conversation_id: str) -> bool:
        return conversation_id in self._halted

    def release_conversation(self, conversation_id: str) -> None:
        """Operator action: resume a conversation halted by an invariant violation."""
        reason = self._halted.pop(conversation_id, None)
        self._seen.pop(conversation_id, None)
        if reason is not None:
            logger.warning("Conversation %s released (was halted: %s)", conversation_id, reason)

    def _ensure_running(self, conversation_id: str) -> None:
        reason = self._halted.get(conversation_id)
        if reason is not None:
            raise InvariantViolation(
                f"Conversation {conversation_id} is halted: {reason}",
                conversation_id=conversation_id,
            )

    def _observe(self, message: Message) -> None:
        """Record (sequence, id) and halt on two different ids for one sequence."""
        seen = self._seen.get(message.conversation_id)
        if seen is None:
            seen = self._seen[message.conversation_id] = OrderedDict()
            while len(self._seen) > SEEN_CONVERSATIONS:
                self._seen.popitem(last=False)
        else:
            self._seen.move_to_end(message.conversation_id)
        prior = seen.get(message.sequence)
        if prior is not None and prior != message.id:
            reason = (
                f"sequence {message.sequence} assigned to both {prior} and {message.id}"
            )
            self._halted[message.conversation_id] = reason
            logger.critical(
                "Invariant violation in conversation %s: %s",
                message.conversation_id, reason,
            )
            raise InvariantViolation(reason, conversation_id=message.conversation_id)
        seen[message.sequence] = message.id
        seen.move_to_end(message.sequence)
        while len(seen) > SEEN_WINDOW:
            seen.popitem(last=False)

    # -- live path ------------------------------------------------------------

    async def publish(self, conversation_id: str, message: Message) -> int:
        """Push ``message`` to every connection watching the conversation.

        Returns the number of connections it was delivered to. Publishing the
        same message twice is harmless.
        """
        if message.conversation_id != conversation_id:
            raise ValidationError("Message belongs to a different conversation")
        self._ensure_running(conversation_id)
        self._observe(message)

        watchers = self._subscriptions.watchers(conversation_id)
        if not watchers:
            return 0
        results = await asyncio.gather(
            *(self._push_live(conn, watch, message) for conn, watch in watchers),
            return_exceptions=True,
        )
        delivered = 0
        for result in results:
            if isinstance(result, InvariantViolation):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Unexpected fan-out failure in %s",
                    conversation_id,
                    exc_info=result,
                )
            elif result:
                delivered += 1
        return delivered

    async def _push_live(self, conn: Connection, watch: Watch, message: Message) -> bool:
        report = 0
        async with watch.lock:
            if not self._still_watching(conn, watch):
                return False
            if message.sequence <= watch.last_delivered:
                return False
            if message.sequence > watch.last_delivered + 1:
                start = watch.last_delivered
                try:
                    _, report = await self._replay(
                        conn, watch, message.conversation_id, message.sequence - 1
                    )
                except GapReplayError:
                    logger.warning(
                        "Gap fill (%d, %d) failed for %s on connection %s",
                        start, message.sequence - 1,
                        message.conversation_id, conn.connection_id,
                    )
                    await self._resync(conn, message.conversation_id)
                    return False
            delivered = await self._deliver(conn, watch, message)
            if delivered and message.sender_id != conn.user_id:
                report = message.sequence
        if report:
            await self._report_delivered(message.conversation_id, conn.user_id, report)
        return delivered

    # -- replay path ----------------------------------------------------------

    async def subscribe(
        self,
        connection_id: str,
        conversation_id: str,
        since_sequence: int = 0,
    ) -> SubscribeResult:
        """Start watching a conversation from ``since_sequence`` (exclusive).

        Stored messages in ``(since_sequence, latest]`` are replayed before any
        live message. Raises GapReplayError if that range cannot be read in
        full; the watch is dropped in that case.
        """
        if since_sequence < 0:
            raise ValidationError("since_sequence must be >= 0")
        self._ensure_running(conversation_id)
        conn = self._subscriptions.get(connection_id)
        if conn is None:
            raise NotFoundError(f"Unknown connection {connection_id}")

        async with self._uow_factory() as uow:
            conversation = await uow.conversations.get_by_id(conversation_id)
            await assert_conversation_access(conn.user_id, conversation, uow.participants)

        # Watch first, then read the latest sequence under the lock, so a message
        # committed meanwhile is replayed here or queued behind the lock.
        watch = self._subscriptions.watch(connection_id, conversation_id, since_sequence)
        async with watch.lock:
            try:
                async with self._uow_factory() as uow:
                    conversation = await uow.conversations.get_by_id(conversation_id)
                latest = conversation.last_sequence if conversation is not None else 0
                if since_sequence > latest:
                    raise ValidationError(
                        f"since_sequence {since_sequence} is beyond the latest sequence {latest}"
                    )
                replayed, foreign_high = await self._replay(
                    conn, watch, conversation_id, latest
                )
            except (GapReplayError, InvariantViolation, ValidationError):
                self._unwatch(connection_id, conversation_id, watch)
                raise

        if foreign_high:
            await self._report_delivered(conversation_id, conn.user_id, foreign_high)
        logger.debug(
            "Connection %s subscribed to %s from %d (replayed %d)",
            connection_id, conversation_id, since_sequence, replayed,
        )
        return SubscribeResult(
            conversation_id=conversation_id,
            since_sequence=since_sequence,
            latest_sequence=latest,
            replayed=replayed,
        )

    async def _replay(
        self,
        conn: Connection,
        watch: Watch,
        conversation_id: str,
        to_sequence: int,
    ) -> tuple[int, int]:
        """Deliver stored messages in ``(last_delivered, to_sequence]``. Caller holds the lock.

        Returns the number of messages sent and the highest sequence among
        them written by someone other than the connection's user (0 if none).
        """
        sent = 0
        foreign_high = 0
        while watch.last_delivered < to_sequence:
            after = watch.last_delivered
            try:
                async with self._uow_factory() as uow:
                    page = await uow.messages.read_range(
                        conversation_id, after, to_sequence, limit=self._page_size,
                    )
            except Exception as exc:
                raise GapReplayError(
                    f"Could not read ({after}, {to_sequence}] of {conversation_id}",
                    conversation_id=conversation_id,
                ) from exc

            if not page:
                raise GapReplayError(
                    f"Store returned nothing for ({after}, {to_sequence}] of {conversation_id}",
                    conversation_id=conversation_id,
                )
            for message in page:
                if message.sequence != watch.last_delivered + 1:
                    raise GapReplayError(
                        f"Missing sequence {watch.last_delivered + 1} in {conversation_id}",
                        conversation_id=conversation_id,
                    )
                self._observe(message)
                if not await self._deliver(conn, watch, message):
                    return sent, foreign_high
                sent += 1
                if message.sender_id != conn.user_id:
                    foreign_high = message.sequence
        return sent, foreign_high

    # -- transport ------------------------------------------------------------

    async def _deliver(self, conn: Connection, watch: Watch, message: Message) -> bool:
        payload = {
            "conversation_id": message.conversation_id,
            "sequence": message.sequence,
            "message": message.to_dict(),
        }
        for attempt in range(self._send_attempts):
            if not self._still_watching(conn, watch):
                return False
            try:
                await conn.sink.send("message.created", payload)
            except Exception:
                if attempt + 1 >= self._send_attempts:
                    logger.warning(
                        "Dropping connection %s after %d failed sends",
                        conn.connection_id, self._send_attempts,
                        exc_info=True,
                    )
                    await self.drop(conn.connection_id, reason="delivery failed")
                    return False
                await asyncio.sleep(self._backoff * (2 ** attempt))
            else:
                watch.last_delivered = message.sequence
                return True
        return False

    async def send_event(self, conn: Connection, event_type: str, data: dict[str, Any]) -> bool:
        """Send a non-message event with the same retry-then-drop policy."""
        for attempt in range(self._send_attempts):
            if not conn.open:
                return False
            try:
                await conn.sink.send(event_type, data)
            except Exception:
                if attempt + 1 >= self._send_attempts:
                    logger.warning(
                        "Dropping connection %s: %s could not be sent",
                        conn.connection_id, event_type,
                        exc_info=True,
                    )
                    await self.drop(conn.connection_id, reason="delivery failed")
                    return False
                await asyncio.sleep(self._backoff * (2 ** attempt))
            else:
                return True
        return False

    async def notify_user(self, user_id: str, event_type: str, data: dict[str, Any]) -> int:
        """Send an event to every open connection of ``user_id``."""
        conns = self._subscriptions.connections_for_user(user_id)
        if not conns:
            return 0
        results = await asyncio.gather(
            *(self.send_event(conn, event_type, data) for conn in conns)
        )
        return sum(1 for ok in results if ok)

    async def drop(self, connection_id: str, *, reason: str = "") -> None:
        conn = self._close(connection_id)
        if conn is None:
            return
        try:
            await conn.sink.close(code=1011, reason=reason)
        except Exception:
            logger.debug("Error closing sink for %s", connection_id, exc_info=True)

    async def _resync(self, conn: Connection, conversation_id: str) -> None:
        self._unwatch(conn.connection_id, conversation_id)
        await self.send_event(conn, "resync_required", {"conversation_id": conversation_id})

    async def _report_delivered(self, conversation_id: str, user_id: str, sequence: int) -> None:
        if self.on_delivered is None:
            return
        try:
            await self.on_delivered(conversation_id, user_id, sequence)
        except Exception:
            logger.exception(
                "Could not record delivery of %s#%d to %s",
                conversation_id, sequence, user_id,
            )

    # -- subscription lifecycle -------------------------------------------------

    def unsubscribe(self, connection_id: str, conversation_id: str) -> None:
        self._unwatch(connection_id, conversation_id)

    def close(self, connection_id: str) -> None:
        self._close(connection_id)

    def _unwatch(
        self, connection_id: str, conversation_id: str, watch: Watch | None = None
    ) -> None:
        """Remove the watch, or only ``watch`` if given and still current."""
        if watch is not None:
            conn = self._subscriptions.get(connection_id)
            if conn is None or conn.watches.get(conversation_id) is not watch:
                watch.active = False
                return
        self._subscriptions.unwatch(connection_id, conversation_id)
        self._forget_if_idle(conversation_id)

    def _close(self, connection_id: str) -> Connection | None:
        conn = self._subscriptions.get(connection_id)
        conversation_ids = list(conn.watches) if conn is not None else []
        closed = self._subscriptions.close(connection_id)
        for conversation_id in conversation_ids:
            self._forget_if_idle(conversation_id)
        return closed

    def _forget_if_idle(self, conversation_id: str) -> None:
        if conversation_id in self._halted:
            return
        if not self._subscriptions.watchers(conversation_id):
            self._seen.pop(conversation_id, None)

    def tracked_conversations(self) -> list[str]:
        """Conversations with a duplicate-detection window held in memory."""
        return list(self._seen)

    @staticmethod
    def _still_watching(conn: Connection, watch: Watch) -> bool:
        return conn.open and watch.active
