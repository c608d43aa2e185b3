from __future__ import annotations

from fastapi import APIRouter

from chat_sync.api.deps import CurrentPrincipal, EngineDep, UoWDep
from chat_sync.api.v1.schemas.conversation import (
    ConversationListResponse,
    ConversationResponse,
    ConversationSummaryResponse,
    CreateDirectConversationRequest,
    CreateGroupConversationRequest,
)
from chat_sync.services import conversation_service

router = APIRouter(prefix="/api/v1/chat/conversations", tags=["conversations"])


@router.post("/direct", response_model=ConversationResponse)
async def create_direct_conversation(
    body: CreateDirectConversationRequest,
    principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
) -> ConversationResponse:
    conv, _created = await engine.create_direct(principal, body.peer_id)
    conv, members = await conversation_service.get_conversation(conv.id, principal, uow)
    return ConversationResponse.model_validate(conv).model_copy(
        update={"participants": members}
    )


@router.post("/group", response_model=ConversationResponse, status_code=201)
async def create_group_conversation(
    body: CreateGroupConversationRequest,
    principal: CurrentPrincipal,
    engine: EngineDep,
    uow: UoWDep,
) -> ConversationResponse:
    conv = await engine.create_group(principal, body.title, body.member_ids)
    conv, members = await conversation_service.get_conversation(conv.id, principal, uow)
    return ConversationResponse.model_validate(conv).model_copy(
        update={"participants": members}
    )


@router.get("", response_model=ConversationListResponse)
async def list_conversations(
    principal: CurrentPrincipal,
    engine: EngineDep,
) -> ConversationListResponse:
    summaries = await engine.index.list_for_user(principal.user_id)
    return ConversationListResponse(
        items=[ConversationSummaryResponse.model_validate(s) for s in summaries],
        total_unread=sum(1 for s in summaries if s.unread_count > 0),
    )


@router.get("/{conversation_id}", response_model=ConversationSummaryResponse)
async def get_conversation(
    conversation_id: str,
    principal: CurrentPrincipal,
    engine: EngineDep,
) -> ConversationSummaryResponse:
    summary = await engine.index.summary(principal.user_id, conversation_id)
    return ConversationSummaryResponse.model_validate(summary)

