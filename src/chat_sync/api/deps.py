"""FastAPI dependency injection helpers."""
from __future__ import annotations

from typing import Annotated, AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from chat_sync.application.dto.principal import Principal
from chat_sync.application.ports.auth import TokenVerifier
from chat_sync.application.ports.media import MediaStore
from chat_sync.application.uow import UnitOfWork
from chat_sync.config import settings
from chat_sync.infrastructure.auth.hs256_verifier import HS256Verifier
from chat_sync.infrastructure.auth.jwks_verifier import JWKSVerifier
from chat_sync.services.engine import SyncEngine

_bearer_scheme = HTTPBearer()


async def get_uow() -> AsyncIterator[UnitOfWork]:
    from chat_sync.infrastructure.db.uow import sqlalchemy_uow

    async with sqlalchemy_uow() as uow:
        yield uow


UoWDep = Annotated[UnitOfWork, Depends(get_uow)]


def get_engine(request: Request) -> SyncEngine:
    return request.app.state.engine


EngineDep = Annotated[SyncEngine, Depends(get_engine)]


def get_media_store(request: Request) -> MediaStore:
    store = getattr(request.app.state, "media_store", None)
    if store is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Media uploads are not configured",
        )
    return store


MediaStoreDep = Annotated[MediaStore, Depends(get_media_store)]


def _get_verifier() -> TokenVerifier:
    if settings.JWT_VERIFY_MODE == "jwks":
        if not settings.JWKS_URL:
            raise RuntimeError("JWKS_URL must be set when JWT_VERIFY_MODE=jwks")
        return JWKSVerifier(settings.JWKS_URL, audience=settings.JWT_AUDIENCE)
    return HS256Verifier(
        settings.JWT_SECRET,
        settings.JWT_ALGORITHM,
        audience=settings.JWT_AUDIENCE,
    )


_verifier: TokenVerifier | None = None


def get_verifier() -> TokenVerifier:
    global _verifier  # noqa: PLW0603
    if _verifier is None:
        _verifier = _get_verifier()
    return _verifier


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(_bearer_scheme)],
) -> Principal:
    verifier = get_verifier()
    try:
        return await verifier.verify(credentials.credentials)
    except Exception as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
