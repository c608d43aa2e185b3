from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text

from chat_sync.config import settings

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def healthz(request: Request) -> dict[str, object]:
    engine = request.app.state.engine
    return {
        "status": "ok",
        "node_id": engine.node_id,
        "connections": len(engine.subscriptions),
    }


@router.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    from chat_sync.infrastructure.db.session import AsyncSessionLocal

    errors: list[str] = []

    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception as exc:  # noqa: BLE001
        errors.append(f"postgres: {exc}")

    redis = getattr(request.app.state, "redis", None)
    if redis is None:
        if settings.REDIS_RELAY_ENABLED:
            errors.append("redis: not connected")
    else:
        try:
            await redis.ping()
        except Exception as exc:  # noqa: BLE001
            errors.append(f"redis: {exc}")

    if errors:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "errors": errors},
        )
    return JSONResponse(content={"status": "ready"})
