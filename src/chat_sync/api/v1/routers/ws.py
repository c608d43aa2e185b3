from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from chat_sync.api.deps import get_verifier
from chat_sync.application.dto.message import SendMessageDTO
from chat_sync.application.dto.principal import Principal
from chat_sync.application.exceptions import (
    AppError,
    ConflictError,
    ContentionError,
    NotFoundError,
)
from chat_sync.config import settings
from chat_sync.infrastructure.ws.protocol import (
    MarkReadPayload,
    SendPayload,
    SubscribePayload,
    UnsubscribePayload,
    WsInbound,
)
from chat_sync.infrastructure.ws.sink import WebSocketSink
from chat_sync.services.engine import SyncEngine

logger = logging.getLogger(__name__)
router = APIRouter(tags=["websocket"])


async def _authenticate(token: str) -> Principal | None:
    try:
        verifier = get_verifier()
        return await verifier.verify(token)
    except Exception:
        logger.debug("WS auth failed", exc_info=True)
        return None


def _error_code(exc: AppError) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, ConflictError) and not isinstance(exc, ContentionError):
        return "send_failed"
    return exc.code


@router.websocket("/ws/chat")
async def ws_chat(
    websocket: WebSocket,
    token: str = Query(...),
) -> None:
    principal = await _authenticate(token)
    if principal is None:
        await websocket.close(code=4001, reason="Authentication failed")
        return

    engine: SyncEngine = websocket.app.state.engine
    await websocket.accept()
    sink = WebSocketSink(websocket)
    connection_id = uuid.uuid4().hex
    heartbeat_task = asyncio.create_task(
        _heartbeat(sink), name=f"ws-heartbeat-{connection_id}",
    )
    try:
        await engine.open_session(connection_id, principal.user_id, sink)
        logger.debug("WS connected: %s user=%s", connection_id, principal.user_id)
        await _read_loop(websocket, sink, engine, connection_id, principal)
    except WebSocketDisconnect:
        pass
    except Exception:
        logger.exception("WS error for %s", connection_id)
    finally:
        heartbeat_task.cancel()
        try:
            await engine.close_session(connection_id, principal.user_id)
        except Exception:
            logger.exception("Presence update failed for %s", principal.user_id)
        logger.debug("WS disconnected: %s", connection_id)


async def _heartbeat(sink: WebSocketSink) -> None:
    interval = settings.WS_HEARTBEAT_SECONDS
    while True:
        await asyncio.sleep(interval)
        try:
            await sink.send("pong", {})
        except Exception:
            logger.debug("Heartbeat stopped", exc_info=True)
            return


async def _read_loop(
    ws: WebSocket,
    sink: WebSocketSink,
    engine: SyncEngine,
    connection_id: str,
    principal: Principal,
) -> None:
    while True:
        raw = await ws.receive_text()
        try:
            msg = WsInbound.model_validate_json(raw)
        except PydanticValidationError:
            await sink.send("error", {"code": "invalid_payload"})
            continue

        try:
            if msg.type == "ping":
                await sink.send("pong", {})
            elif msg.type == "subscribe":
                await _handle_subscribe(sink, engine, connection_id, msg.data)
            elif msg.type == "unsubscribe":
                payload = UnsubscribePayload.model_validate(msg.data)
                engine.unsubscribe(connection_id, payload.conversation_id)
            elif msg.type == "message.send":
                await _handle_send(sink, engine, principal, msg.data)
            elif msg.type == "mark_read":
                payload = MarkReadPayload.model_validate(msg.data)
                await engine.acknowledge_read(principal, payload.conversation_id, payload.sequence)
            else:
                await sink.send("error", {"code": "unknown_type", "type": msg.type})
        except PydanticValidationError as exc:
            await sink.send(
                "error", {"code": "invalid_data", "detail": str(exc), "type": msg.type}
            )
        except AppError as exc:
            await sink.send(
                "error", {"code": _error_code(exc), "detail": exc.detail, "type": msg.type}
            )


async def _handle_subscribe(
    sink: WebSocketSink,
    engine: SyncEngine,
    connection_id: str,
    data: dict[str, Any],
) -> None:
    payload = SubscribePayload.model_validate(data)
    result = await engine.subscribe(
        connection_id, payload.conversation_id, payload.since_sequence,
    )
    await sink.send(
        "subscribed",
        {
            "conversation_id": result.conversation_id,
            "since_sequence": result.since_sequence,
            "latest_sequence": result.latest_sequence,
            "replayed": result.replayed,
        },
    )


async def _handle_send(
    sink: WebSocketSink,
    engine: SyncEngine,
    principal: Principal,
    data: dict[str, Any],
) -> None:
    payload = SendPayload.model_validate(data)
    if bool(payload.conversation_id) == bool(payload.recipient_id):
        await sink.send(
            "error",
            {
                "code": "invalid_data",
                "detail": "Exactly one of conversation_id or recipient_id is required",
                "client_msg_id": str(payload.client_msg_id),
            },
        )
        return

    dto = SendMessageDTO(
        conversation_id=payload.conversation_id or "",
        client_msg_id=payload.client_msg_id,
        type=payload.type,
        body=payload.body,
        media=payload.media.to_entity() if payload.media else None,
        reply_to=payload.reply_to,
    )
    try:
        if payload.recipient_id:
            msg, _created = await engine.send_direct(principal, payload.recipient_id, dto)
        else:
            msg, _created = await engine.send_message(principal, dto)
    except AppError as exc:
        await sink.send(
            "error",
            {
                "code": _error_code(exc),
                "detail": exc.detail,
                "client_msg_id": str(payload.client_msg_id),
            },
        )
        return

    await sink.send(
        "message.sent",
        {"client_msg_id": str(payload.client_msg_id), "message": msg.to_dict()},
    )
