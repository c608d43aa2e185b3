from __future__ import annotations

from fastapi import APIRouter, Query

from chat_sync.api.deps import CurrentPrincipal, EngineDep, UoWDep
from chat_sync.api.v1.schemas.common import SequencePage
from chat_sync.api.v1.schemas.message import (
    MessageResponse,
    ReadAckRequest,
    ReadAckResponse,
    SendMessageRequest,
)
from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.domain.entities.message import Message
from chat_sync.services import message_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["messages"])


def _to_response(message: Message, status: str | None = None) -> MessageResponse:
    return MessageResponse.model_validate({**message.to_dict(), "status": status})


@router.get("/{conversation_id}/messages", response_model=SequencePage[MessageResponse])
async def list_messages(
    conversation_id: str,
    principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
    after_sequence: int = Query(0, ge=0),
    limit: int = Query(message_service.DEFAULT_PAGE_LIMIT, ge=1, le=message_service.MAX_PAGE_LIMIT),
) -> SequencePage[MessageResponse]:
    messages, latest = await message_service.list_messages(
        conversation_id, principal, after_sequence, limit, uow,
    )
    frontier = await engine.reconciler.frontier(conversation_id, principal.user_id)
    items = [
        _to_response(
            m,
            frontier.status_of(m.sequence).value if m.sender_id == principal.user_id else None,
        )
        for m in messages
    ]
    next_after = messages[-1].sequence if messages and messages[-1].sequence < latest else None
    return SequencePage[MessageResponse](
        items=items, next_after_sequence=next_after, latest_sequence=latest,
    )


@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    principal: CurrentPrincipal,
    engine: EngineDep,
) -> MessageResponse:
    msg, _created = await engine.send_message(
        principal,
        SendMessageDTO(
            conversation_id=conversation_id,
            client_msg_id=body.client_msg_id,
            type=body.type,
            body=body.body,
            media=body.media.to_entity() if body.media else None,
            reply_to=body.reply_to,
        ),
    )
    return _to_response(msg)


@router.post("/{conversation_id}/read", response_model=ReadAckResponse)
async def mark_read(
    conversation_id: str,
    body: ReadAckRequest,
    principal: CurrentPrincipal,
    engine: EngineDep,
) -> ReadAckResponse:
    result = await engine.acknowledge_read(principal, conversation_id, body.sequence)
    return ReadAckResponse.model_validate(result)
