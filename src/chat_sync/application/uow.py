from __future__ import annotations

from contextlib import AbstractAsyncContextManager
from typing import Callable, Protocol

from chat_sync.application.repositories.conversation import (
    ConversationReader,
    ConversationWriter,
)
from chat_sync.application.repositories.cursor import CursorReader, CursorWriter
from chat_sync.application.repositories.message import MessageReader, MessageWriter
from chat_sync.application.repositories.outbox import OutboxWriter
from chat_sync.application.repositories.participant import (
    ParticipantReader,
    ParticipantWriter,
)


class UnitOfWork(Protocol):
    conversations: ConversationReader
    conversations_w: ConversationWriter
    participants: ParticipantReader
    participants_w: ParticipantWriter
    messages: MessageReader
    messages_w: MessageWriter
    cursors: CursorReader
    cursors_w: CursorWriter
    outbox: OutboxWriter

    async def commit(self) -> None: ...
    async def rollback(self) -> None: ...
    async def flush(self) -> None: ...


# Opens a fresh unit of work for code that runs outside a request scope
# (fan-out replay, reconciler, index refresh, background workers).
UnitOfWorkFactory = Callable[[], AbstractAsyncContextManager[UnitOfWork]]
