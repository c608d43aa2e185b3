"""Per-conversation sequence allocation.

The conversation row carries a ``last_sequence`` counter. Allocation reads it
and bumps it with a conditional write; the bump commits in the same transaction
as the message insert, so an aborted append releases its number and the log
stays gapless.
"""
from __future__ import annotations

import asyncio
import logging
import random

from chat_sync.application.exceptions import ContentionError, UnknownConversationError
from chat_sync.application.uow import UnitOfWork

logger = logging.getLogger(__name__)


class SequenceAllocator:
    def __init__(
        self,
        *,
        max_attempts: int = 8,
        backoff_seconds: float = 0.005,
        max_backoff_seconds: float = 0.25,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self._max_attempts = max_attempts
        self._backoff = backoff_seconds
        self._max_backoff = max_backoff_seconds

    async def allocate(self, uow: UnitOfWork, conversation_id: str) -> int:
        """Reserve the next sequence number inside ``uow``.

        Raises UnknownConversationError if the conversation does not exist and
        ContentionError once the retry budget is spent.
        """
        for attempt in range(self._max_attempts):
            conversation = await uow.conversations.get_by_id(conversation_id)
            if conversation is None:
                raise UnknownConversationError(f"Conversation {conversation_id} not found")

            expected = conversation.last_sequence
            if await uow.conversations_w.compare_and_set_sequence(
                conversation_id, expected, expected + 1
            ):
                return expected + 1

            delay = min(self._backoff * (2 ** attempt), self._max_backoff)
            logger.debug(
                "Sequence race on %s at %d (attempt %d), retrying in %.3fs",
                conversation_id, expected, attempt + 1, delay,
            )
            await asyncio.sleep(random.uniform(0, delay))

        logger.warning(
            "Sequence allocation for %s gave up after %d attempts",
            conversation_id, self._max_attempts,
        )
        raise ContentionError(
            f"Could not allocate a sequence for {conversation_id}; retry the send"
        )
