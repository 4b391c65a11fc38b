"""
WebSocketによるリマインダー通知のリアルタイム配信API

クライアントは接続後に authenticate メッセージで user_id を登録する。
登録時に未配信のオフライン通知が作成順に流れ、その後はスケジューラからの通知を直接受け取る。

Client -> Server:
- {"type": "authenticate", "user_id": "..."}
- {"type": "notification_read", "notification_id": 123}

Server -> Client（{"event": ..., "data": {...}}）:
- authenticated / reminder_notification / notification_read_success / socket_error
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from habitline import schemas
from habitline.api.http_auth import require_bearer_only
from habitline.api.ws_auth import authenticate_ws_bearer
from habitline.deps import get_event_stream_dep
from habitline.reminders.errors import ReminderError
from habitline.runtime.event_stream import (
    NOTIFICATION_READ_SUCCESS_EVENT,
    SOCKET_ERROR_EVENT,
    ClientConnection,
    EventStream,
)


router = APIRouter(prefix="/events", tags=["events"])
logger = logging.getLogger(__name__)


@router.get(
    "/connections",
    response_model=schemas.ConnectionStatsResponse,
    dependencies=[Depends(require_bearer_only)],
)
def connection_stats(stream: EventStream = Depends(get_event_stream_dep)) -> schemas.ConnectionStatsResponse:
    """接続中ユーザーの一覧を返す。"""

    return schemas.ConnectionStatsResponse(**stream.get_connection_stats())


async def _handle_authenticate(stream: EventStream, conn: ClientConnection, payload: dict[str, Any]) -> None:
    user_id = str(payload.get("user_id") or payload.get("userId") or "").strip()
    if not user_id:
        await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": "user_id is required"})
        return
    delivered = await stream.authenticate(user_id, conn)
    logger.info("events websocket authenticated user_id=%s pending_delivered=%s", user_id, delivered)


async def _handle_notification_read(stream: EventStream, conn: ClientConnection, payload: dict[str, Any]) -> None:
    if not conn.user_id:
        await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": "not authenticated"})
        return
    raw_id = payload.get("notification_id", payload.get("notificationId"))
    try:
        notification_id = int(raw_id)
    except (TypeError, ValueError):
        await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": "notification_id must be an integer"})
        return

    try:
        await asyncio.to_thread(stream.notification_queue.mark_read, notification_id, conn.user_id)
    except ReminderError as exc:
        await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": str(exc)})
        return
    await stream.reply(conn, NOTIFICATION_READ_SUCCESS_EVENT, {"notificationId": notification_id})


@router.websocket("/stream")
async def stream_events(websocket: WebSocket) -> None:
    """
    リマインダー通知をWebSocketで配信する。

    Bearer認証後に接続を受け入れ、切断時は接続レジストリから外す。
    """
    # --- 先に accept し、認証NGなら policy violation(1008) で close する ---
    await websocket.accept()
    if not await authenticate_ws_bearer(websocket):
        logger.info("events websocket rejected (auth failed)")
        return

    stream: EventStream = websocket.app.state.event_stream
    conn = stream.open_connection(websocket)
    logger.info("events websocket connected")
    try:
        while True:
            text = await websocket.receive_text()
            try:
                payload = json.loads(text or "")
            except json.JSONDecodeError:
                await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": "invalid json"})
                continue
            if not isinstance(payload, dict):
                await stream.reply(conn, SOCKET_ERROR_EVENT, {"message": "message must be an object"})
                continue

            msg_type = str(payload.get("type") or "").strip()
            if msg_type == "authenticate":
                await _handle_authenticate(stream, conn, payload)
            elif msg_type == "notification_read":
                await _handle_notification_read(stream, conn, payload)
            else:
                logger.debug("events websocket ignored message type=%s", msg_type)
    except WebSocketDisconnect:
        logger.info("events websocket disconnected by client")
    except Exception as exc:  # noqa: BLE001
        logger.warning("events websocket terminated by error: %s", str(exc))
    finally:
        stream.unregister(conn)
        logger.info("events websocket disconnected")
