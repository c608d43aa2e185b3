from __future__ import annotations

from fastapi import APIRouter

from chat_sync.api.deps import CurrentPrincipal, EngineDep
from chat_sync.api.v1.schemas.presence import PresenceResponse

router = APIRouter(prefix="/api/v1/chat/presence", tags=["presence"])


@router.get("/{user_id}", response_model=PresenceResponse)
async def get_presence(
    user_id: str,
    principal: CurrentPrincipal,
    engine: EngineDep,
) -> PresenceResponse:
    return PresenceResponse.model_validate(engine.presence.get(user_id))
