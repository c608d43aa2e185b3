"""In-memory registry of live client connections and their watches."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field

from chat_sync.application.ports.transport import DeliverySink

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Watch:
    """One connection's position in one conversation."""

    conversation_id: str
    last_delivered: int
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    active: bool = True


@dataclass(slots=True)
class Connection:
    connection_id: str
    user_id: str
    sink: DeliverySink
    watches: dict[str, Watch] = field(default_factory=dict)
    open: bool = True


class SubscriptionManager:
    """Tracks connections, the users behind them, and what each one watches.

    Unwatch and close flip the ``active``/``open`` flags, so a push that was
    already waiting on a watch lock sees the change and skips the send.
    """

    def __init__(self) -> None:
        self._connections: dict[str, Connection] = {}
        self._by_user: dict[str, set[str]] = {}
        self._by_conversation: dict[str, set[str]] = {}

    def open(self, connection_id: str, user_id: str, sink: DeliverySink) -> Connection:
        if connection_id in self._connections:
            raise ValueError(f"Connection {connection_id} is already open")
        conn = Connection(connection_id=connection_id, user_id=user_id, sink=sink)
        self._connections[connection_id] = conn
        self._by_user.setdefault(user_id, set()).add(connection_id)
        logger.debug("Connection opened: %s user=%s", connection_id, user_id)
        return conn

    def watch(self, connection_id: str, conversation_id: str, since_sequence: int) -> Watch:
        conn = self._require(connection_id)
        existing = conn.watches.get(conversation_id)
        if existing is not None:
            existing.active = False
        watch = Watch(conversation_id=conversation_id, last_delivered=since_sequence)
        conn.watches[conversation_id] = watch
        self._by_conversation.setdefault(conversation_id, set()).add(connection_id)
        return watch

    def unwatch(self, connection_id: str, conversation_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn is None:
            return
        watch = conn.watches.pop(conversation_id, None)
        if watch is not None:
            watch.active = False
        self._discard_watcher(conversation_id, connection_id)

    def close(self, connection_id: str) -> Connection | None:
        conn = self._connections.pop(connection_id, None)
        if conn is None:
            return None
        conn.open = False
        for conversation_id, watch in conn.watches.items():
            watch.active = False
            self._discard_watcher(conversation_id, connection_id)
        conn.watches.clear()
        user_conns = self._by_user.get(conn.user_id)
        if user_conns is not None:
            user_conns.discard(connection_id)
            if not user_conns:
                del self._by_user[conn.user_id]
        logger.debug("Connection closed: %s", connection_id)
        return conn

    def get(self, connection_id: str) -> Connection | None:
        return self._connections.get(connection_id)

    def watchers(self, conversation_id: str) -> list[tuple[Connection, Watch]]:
        result = []
        for connection_id in sorted(self._by_conversation.get(conversation_id, ())):
            conn = self._connections.get(connection_id)
            if conn is None:
                continue
            watch = conn.watches.get(conversation_id)
            if watch is not None and watch.active:
                result.append((conn, watch))
        return result

    def connections_for_user(self, user_id: str) -> list[Connection]:
        return [
            self._connections[cid]
            for cid in sorted(self._by_user.get(user_id, ()))
            if cid in self._connections
        ]

    def __len__(self) -> int:
        return len(self._connections)

    def _require(self, connection_id: str) -> Connection:
        conn = self._connections.get(connection_id)
        if conn is None:
            raise KeyError(f"Unknown connection {connection_id}")
        return conn

    def _discard_watcher(self, conversation_id: str, connection_id: str) -> None:
        watchers = self._by_conversation.get(conversation_id)
        if watchers is None:
            return
        watchers.discard(connection_id)
        if not watchers:
            del self._by_conversation[conversation_id]
