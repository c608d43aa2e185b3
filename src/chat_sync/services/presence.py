"""Online status and last-seen, derived from open connections.

A user is online while at least one of their connections is open on this node
or on any node that has announced them online. ``last_seen`` is the time of
the most recent transition seen anywhere.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.uow import UnitOfWork, UnitOfWorkFactory
from chat_sync.domain.events.presence_changed import EVENT_TYPE as PRESENCE_CHANGED
from chat_sync.domain.events.presence_changed import PresenceChanged
from chat_sync.services.fanout import DeliveryFanout
from chat_sync.services.subscriptions import SubscriptionManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Presence:
    user_id: str
    online: bool
    last_seen: datetime | None

    def to_payload(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "online": self.online,
            "last_seen": self.last_seen.isoformat() if self.last_seen else None,
        }


class PresenceService:
    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        subscriptions: SubscriptionManager,
        fanout: DeliveryFanout,
        *,
        clock: Clock | None = None,
        origin: str | None = None,
    ) -> None:
        self._uow_factory = uow_factory
        self._subscriptions = subscriptions
        self._fanout = fanout
        self._clock = clock or SystemClock()
        self._origin = origin
        self._last_seen: dict[str, datetime] = {}
        # user_id -> nodes that reported the user online
        self._remote_online: dict[str, set[str]] = {}

    def get(self, user_id: str) -> Presence:
        online = bool(
            self._subscriptions.connections_for_user(user_id)
            or self._remote_online.get(user_id)
        )
        return Presence(user_id=user_id, online=online, last_seen=self._last_seen.get(user_id))

    async def connected(self, user_id: str) -> Presence:
        """Call after opening a connection; announces the user's first one."""
        if len(self._subscriptions.connections_for_user(user_id)) != 1:
            return self.get(user_id)
        return await self._transition(user_id, online=True)

    async def disconnected(self, user_id: str) -> Presence:
        """Call after closing a connection; announces the user's last one."""
        if self._subscriptions.connections_for_user(user_id):
            return self.get(user_id)
        return await self._transition(user_id, online=False)

    async def apply_remote(self, event: PresenceChanged, origin: str) -> None:
        """Record a transition announced by another node and tell local peers."""
        nodes = self._remote_online.setdefault(event.user_id, set())
        if event.online:
            nodes.add(origin)
        else:
            nodes.discard(origin)
            if not nodes:
                del self._remote_online[event.user_id]
        self._touch(event.user_id, event.at)
        async with self._uow_factory() as uow:
            peers = await self._peers(uow, event.user_id)
        await self._push(self.get(event.user_id), peers)

    async def _transition(self, user_id: str, *, online: bool) -> Presence:
        event = PresenceChanged(user_id=user_id, online=online, at=self._clock.now())
        self._touch(user_id, event.at)
        payload = event.to_payload()
        if self._origin is not None:
            payload["origin"] = self._origin
        async with self._uow_factory() as uow:
            peers = await self._peers(uow, user_id)
            await uow.outbox.add(PRESENCE_CHANGED, payload)
            await uow.commit()

        presence = self.get(user_id)
        logger.debug("Presence %s online=%s", user_id, presence.online)
        await self._push(presence, peers)
        return presence

    def _touch(self, user_id: str, at: datetime) -> None:
        current = self._last_seen.get(user_id)
        if current is None or at > current:
            self._last_seen[user_id] = at

    @staticmethod
    async def _peers(uow: UnitOfWork, user_id: str) -> set[str]:
        peers: set[str] = set()
        for conversation in await uow.conversations.list_for_user(user_id):
            for participant in await uow.participants.list_participants(conversation.id):
                if participant.user_id != user_id:
                    peers.add(participant.user_id)
        return peers

    async def _push(self, presence: Presence, peers: set[str]) -> None:
        payload = presence.to_payload()
        for peer in sorted(peers):
            await self._fanout.notify_user(peer, "presence.updated", payload)
