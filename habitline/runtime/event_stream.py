"""
WebSocket向けリアルタイム配信（Delivery Channel）

接続中ユーザーへリマインダー通知などのイベントを直接送る。
送れなかった場合（未接続/送信失敗）は False を返し、呼び出し側がオフラインキューへ退避する。

方針:
- 接続レジストリ（user_id -> 接続）はこのクラスのインスタンスが持つ（モジュールグローバルにしない）。
  アプリ起動時に1つ作り、app.state 経由で API / スケジューラへ渡す。
- 同一ユーザーの同時接続は後勝ち（最後に authenticate した接続だけが受信する）。
  ファンアウトはしない。
- authenticate 時は、その接続の送信ロックを握ったまま未配信通知を作成順に流す。
  流し終わるまで、その接続への通常イベントはロック待ちになる。
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import logging
import threading
from typing import Any, Optional, TYPE_CHECKING

from habitline.reminders.errors import DeliveryError

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import WebSocket

    from habitline.reminders.notifications import OfflineNotificationQueue


REMINDER_NOTIFICATION_EVENT = "reminder_notification"
AUTHENTICATED_EVENT = "authenticated"
NOTIFICATION_READ_SUCCESS_EVENT = "notification_read_success"
SOCKET_ERROR_EVENT = "socket_error"

logger = logging.getLogger(__name__)

# --- 送信設定 ---
# NOTE:
# - 送信はタイムアウトを設け、遅いクライアントを切り離す。
# - スレッドからの送信待ちは drain 待ちを含むため長めに取る。
_SEND_TIMEOUT_SECONDS = 2.0
_THREADSAFE_WAIT_FACTOR = 5.0


def _serialize_event(event: str, data: dict[str, Any]) -> str:
    """
    イベントをJSON文字列にシリアライズする。

    WebSocket送信用の最小ペイロードに整形する。
    """
    return json.dumps(
        {"event": str(event), "data": data},
        ensure_ascii=False,
        separators=(",", ":"),
    )


class ClientConnection:
    """WebSocket 1本分の送信口。送信は send_lock で直列化する。"""

    def __init__(self, websocket: "WebSocket") -> None:
        self.websocket = websocket
        self.send_lock = asyncio.Lock()
        self.user_id: Optional[str] = None


class EventStream:
    """接続中ユーザーへの直接配信とオフライン通知の再送を担う。"""

    def __init__(
        self,
        *,
        notification_queue: "OfflineNotificationQueue",
        send_timeout_seconds: float = _SEND_TIMEOUT_SECONDS,
    ) -> None:
        self.notification_queue = notification_queue
        self.send_timeout_seconds = float(send_timeout_seconds)

        # --- user_id -> 接続（後勝ち） ---
        self._connections: dict[str, ClientConnection] = {}
        self._lock = threading.Lock()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    # --- ライフサイクル ---

    def install(self, loop: asyncio.AbstractEventLoop) -> None:
        """
        スレッドからの送信（send_to_user_threadsafe）に使うイベントループを登録する。
        """
        self._loop = loop
        logger.info("event stream installed")

    def uninstall(self) -> None:
        """イベントループの登録を外し、接続レジストリを空にする。"""

        self._loop = None
        with self._lock:
            self._connections.clear()
        logger.info("event stream uninstalled")

    def open_connection(self, websocket: "WebSocket") -> ClientConnection:
        """accept 済み WebSocket から送信口を作る（まだ登録はしない）。"""

        return ClientConnection(websocket)

    # --- 接続レジストリ ---

    def _register(self, user_id: str, conn: ClientConnection) -> Optional[ClientConnection]:
        with self._lock:
            previous = self._connections.get(user_id)
            self._connections[user_id] = conn
        conn.user_id = user_id
        return previous if previous is not conn else None

    def unregister(self, conn: ClientConnection) -> None:
        """
        接続を登録解除する。

        同じ user_id に新しい接続が登録済みなら何もしない（後勝ちの接続を消さない）。
        """
        user_id = conn.user_id
        if not user_id:
            return
        with self._lock:
            if self._connections.get(user_id) is conn:
                self._connections.pop(user_id, None)
                logger.info("user %s disconnected", user_id)

    def _get(self, user_id: str) -> Optional[ClientConnection]:
        with self._lock:
            return self._connections.get(str(user_id))

    def is_user_online(self, user_id: str) -> bool:
        """指定ユーザーが接続中かを返す。"""

        if not str(user_id or "").strip():
            return False
        return self._get(str(user_id)) is not None

    def get_connected_users(self) -> list[str]:
        """接続中の user_id 一覧を返す。"""

        with self._lock:
            return list(self._connections.keys())

    def get_connection_stats(self) -> dict[str, Any]:
        """接続数と接続中ユーザーを返す。"""

        users = self.get_connected_users()
        return {"total_connections": len(users), "connected_users": users}

    # --- 送信 ---

    async def _write(self, conn: ClientConnection, event: str, data: dict[str, Any]) -> bool:
        """ロックを取らずに1フレーム送る（呼び出し側が send_lock を握っている前提）。"""

        payload = _serialize_event(event, data)
        try:
            await asyncio.wait_for(conn.websocket.send_text(payload), timeout=self.send_timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("event stream send failed event=%s user_id=%s: %s", event, conn.user_id, str(exc))
            return False
        return True

    async def reply(self, conn: ClientConnection, event: str, data: dict[str, Any]) -> bool:
        """接続そのものへ応答を送る（authenticate 前でも使える）。"""

        async with conn.send_lock:
            return await self._write(conn, event, data)

    async def send_to_user(self, user_id: str, event: str, data: dict[str, Any]) -> bool:
        """
        接続中ユーザーへイベントを送る。

        Returns:
            True: 送信できた
            False: 未接続 / 送信失敗（失敗した接続は登録解除する）
        """

        uid = str(user_id or "").strip()
        if not uid:
            raise DeliveryError("user_id is required")
        conn = self._get(uid)
        if conn is None:
            return False

        async with conn.send_lock:
            ok = await self._write(conn, event, data)
        if ok:
            logger.info("sent %s to user %s", event, uid)
        else:
            self.unregister(conn)
        return ok

    def send_to_user_threadsafe(
        self,
        user_id: str,
        event: str,
        data: dict[str, Any],
        *,
        timeout_seconds: float | None = None,
    ) -> bool:
        """
        ワーカースレッドから send_to_user を呼び、結果を待って返す。

        イベントループのスレッドから呼んではいけない（自分自身を待ってしまう）。

        Raises:
            DeliveryError: ループ未登録 / ループ停止済み / 待ちタイムアウト。
        """

        loop = self._loop
        if loop is None:
            raise DeliveryError("event stream is not installed")

        # --- 未接続ならループへ渡すまでもない ---
        if not self.is_user_online(user_id):
            return False

        wait = float(timeout_seconds) if timeout_seconds is not None else self.send_timeout_seconds * _THREADSAFE_WAIT_FACTOR
        try:
            future = asyncio.run_coroutine_threadsafe(self.send_to_user(user_id, event, data), loop)
        except RuntimeError as exc:
            # --- shutdown レース（loop close 後） ---
            raise DeliveryError(f"event loop is not running: {exc}") from exc
        try:
            return bool(future.result(timeout=wait))
        except concurrent.futures.TimeoutError as exc:
            future.cancel()
            raise DeliveryError(f"send to user {user_id} timed out") from exc

    # --- 接続確立 ---

    async def authenticate(self, user_id: str, conn: ClientConnection) -> int:
        """
        接続を user_id に紐づけ、未配信通知を作成順に流す。

        送信ロックを握ったまま「登録 -> authenticated 応答 -> drain」を行うので、
        同じ接続への通常イベントは drain 完了後に送られる。

        Returns:
            drain で配信済みにした件数。
        """

        uid = str(user_id or "").strip()
        if not uid:
            raise DeliveryError("user_id is required for authentication")

        loop = asyncio.get_running_loop()
        async with conn.send_lock:
            # --- 同じ接続で別ユーザーとして認証し直した場合は旧登録を外す ---
            if conn.user_id and conn.user_id != uid:
                self.unregister(conn)
            previous = self._register(uid, conn)
            if previous is not None:
                logger.info("user %s reconnected; previous connection replaced", uid)
            logger.info("user %s authenticated", uid)
            await self._write(conn, AUTHENTICATED_EVENT, {"userId": uid})

            # --- drain は DB 操作を含むのでスレッドで回し、送信だけループへ戻す ---
            def _push(data: dict[str, Any]) -> bool:
                future = asyncio.run_coroutine_threadsafe(
                    self._write(conn, REMINDER_NOTIFICATION_EVENT, data),
                    loop,
                )
                try:
                    return bool(future.result(timeout=self.send_timeout_seconds * _THREADSAFE_WAIT_FACTOR))
                except concurrent.futures.TimeoutError as exc:
                    future.cancel()
                    raise DeliveryError(f"pending notification push to user {uid} timed out") from exc

            delivered = await asyncio.to_thread(self.notification_queue.drain, uid, _push)
        return int(delivered)
