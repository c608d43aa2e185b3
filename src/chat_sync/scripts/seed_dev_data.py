"""Seed development data: schema, a direct chat and a group with a few messages."""
from __future__ import annotations

import asyncio
import logging
import uuid

from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.domain.value_objects.enums import CursorType
from chat_sync.infrastructure.db.base import Base
from chat_sync.infrastructure.db import models  # noqa: F401  registers tables on Base.metadata
from chat_sync.infrastructure.db.session import AsyncSessionLocal, engine
from chat_sync.infrastructure.db.uow import SqlAlchemyUoW
from chat_sync.services import conversation_service, message_service
from chat_sync.services.sequence_allocator import SequenceAllocator

logger = logging.getLogger(__name__)

ALICE = Principal(user_id="alice", display_name="Alice")
BOB = Principal(user_id="bob", display_name="Bob")
CAROL = Principal(user_id="carol", display_name="Carol")


async def _send(principal: Principal, conversation_id: str, body: str) -> None:
    async with AsyncSessionLocal() as session:
        uow = SqlAlchemyUoW(session)
        msg, created = await message_service.send_message(
            SendMessageDTO(
                conversation_id=conversation_id,
                client_msg_id=uuid.uuid5(uuid.NAMESPACE_URL, f"{conversation_id}/{body}"),
                body=body,
            ),
            principal,
            uow,
            SequenceAllocator(),
        )
        if created:
            await uow.cursors_w.upsert_cursor(
                conversation_id, principal.user_id, CursorType.READ, msg.sequence
            )
            await uow.commit()


async def seed() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as session:
        direct, _ = await conversation_service.get_or_create_direct(
            ALICE, BOB.user_id, SqlAlchemyUoW(session)
        )
    async with AsyncSessionLocal() as session:
        group = await conversation_service.create_group(
            ALICE, "Weekend trip", [BOB.user_id, CAROL.user_id], SqlAlchemyUoW(session)
        )

    script = [
        (ALICE, direct.id, "Hi Bob!"),
        (BOB, direct.id, "Hey Alice, how are you?"),
        (ALICE, direct.id, "Great, thanks."),
        (CAROL, group.id, "Who is driving on Saturday?"),
        (BOB, group.id, "I can."),
    ]
    for principal, conversation_id, body in script:
        await _send(principal, conversation_id, body)

    logger.info(
        "Seeded %s and %s with %d messages", direct.id, group.id, len(script)
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    asyncio.run(seed())


if __name__ == "__main__":
    main()
