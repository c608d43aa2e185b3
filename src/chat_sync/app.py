from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

import redis.asyncio as aioredis
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chat_sync.api.middleware.correlation_id import CorrelationIdMiddleware
from chat_sync.api.middleware.metrics import RequestTimingMiddleware
from chat_sync.api.v1.routers import conversations, health, media, messages, presence, ws
from chat_sync.application.exceptions import (
    AppError,
    ConflictError,
    ForbiddenError,
    GapReplayError,
    InvariantViolation,
    MediaUploadError,
    NotFoundError,
    ValidationError,
)
from chat_sync.application.ports.media import MediaStore
from chat_sync.application.uow import UnitOfWorkFactory
from chat_sync.config import settings
from chat_sync.infrastructure.bus.redis_pubsub import RedisPubSubSubscriber
from chat_sync.infrastructure.media.cloudinary import CloudinaryMediaStore
from chat_sync.services.engine import SyncEngine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup / shutdown lifecycle."""
    engine: SyncEngine = app.state.engine
    app.state.redis = None
    subscriber: RedisPubSubSubscriber | None = None
    if settings.REDIS_RELAY_ENABLED:
        app.state.redis = aioredis.from_url(
            settings.REDIS_URL,
            decode_responses=True,
        )
        logger.info("Redis connection pool created")

        subscriber = RedisPubSubSubscriber(
            app.state.redis,
            settings.REDIS_PUBSUB_CHANNEL,
            engine.handle_remote_event,
            node_id=engine.node_id,
        )
        await subscriber.start()
    else:
        logger.warning("Cross-node relay disabled; running as a single node")
    logger.info("Sync engine node %s ready", engine.node_id)

    yield

    if subscriber is not None:
        await subscriber.stop()
    if app.state.redis is not None:
        await app.state.redis.aclose()
        logger.info("Redis connection pool closed")
    store = app.state.media_store
    if isinstance(store, CloudinaryMediaStore):
        await store.close()


def _default_media_store() -> MediaStore | None:
    if not settings.MEDIA_CLOUD_NAME:
        return None
    return CloudinaryMediaStore(
        cloud_name=settings.MEDIA_CLOUD_NAME,
        upload_preset=settings.MEDIA_UPLOAD_PRESET,
        base_url=settings.MEDIA_BASE_URL,
        default_folder=settings.MEDIA_FOLDER,
        timeout=settings.MEDIA_TIMEOUT_SECONDS,
    )


def create_app(
    uow_factory: UnitOfWorkFactory | None = None,
    *,
    media_store: MediaStore | None = None,
) -> FastAPI:
    if uow_factory is None:
        from chat_sync.infrastructure.db.uow import sqlalchemy_uow

        uow_factory = sqlalchemy_uow

    app = FastAPI(
        title="Chat Sync Service",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.engine = SyncEngine.from_settings(uow_factory, settings)
    app.state.media_store = media_store or _default_media_store()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestTimingMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    _register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(conversations.router)
    app.include_router(messages.router)
    app.include_router(media.router)
    app.include_router(presence.router)
    app.include_router(ws.router)

    return app


def _error(status_code: int, exc: AppError) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code, "detail": exc.detail},
    )


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(NotFoundError)
    async def _not_found(_req: Request, exc: NotFoundError) -> JSONResponse:
        return _error(404, exc)

    @app.exception_handler(ForbiddenError)
    async def _forbidden(_req: Request, exc: ForbiddenError) -> JSONResponse:
        return _error(403, exc)

    @app.exception_handler(ConflictError)
    async def _conflict(_req: Request, exc: ConflictError) -> JSONResponse:
        return _error(409, exc)

    @app.exception_handler(ValidationError)
    async def _validation(_req: Request, exc: ValidationError) -> JSONResponse:
        return _error(422, exc)

    @app.exception_handler(GapReplayError)
    async def _gap_replay(_req: Request, exc: GapReplayError) -> JSONResponse:
        return _error(503, exc)

    @app.exception_handler(InvariantViolation)
    async def _invariant(_req: Request, exc: InvariantViolation) -> JSONResponse:
        return _error(500, exc)

    @app.exception_handler(MediaUploadError)
    async def _media_upload(_req: Request, exc: MediaUploadError) -> JSONResponse:
        return _error(502, exc)
