"""
オフライン通知キュー（notifications テーブル）。

目的:
    - リアルタイム配信できなかった通知を永続化し、再接続時にまとめて配信する。

方針:
    - drain はエントリ単位で「送信 -> delivered=True」を繰り返す（全体のトランザクションにはしない）。
      途中で落ちた場合、送信済みは delivered、未送信は pending のまま残る（at-least-once）。
    - delivered の False -> True は1回だけ（条件付き UPDATE）。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from habitline.core.clock import ClockService, get_clock_service
from habitline.core.time_utils import format_iso8601_utc
from habitline.reminders.errors import DeliveryError, NotFoundError, ValidationError
from habitline.reminders.models import NOTIFICATION_PRIORITIES, NOTIFICATION_TYPES, Notification
from habitline.storage.db import session_scope


logger = logging.getLogger(__name__)

# drain の push 契約: 1件分の event data を受け取り、送れたら True
PushFunc = Callable[[dict[str, Any]], bool]


@dataclass(frozen=True)
class NotificationRecord:
    """notifications 行の読み取り専用コピー。"""

    id: int
    user_id: str
    type: str
    entity_type: Optional[str]
    entity_id: Optional[int]
    title: str
    message: str
    priority: str
    read: bool
    delivered: bool
    delivered_at: Optional[int]
    created_at: int

    def to_event_data(self) -> dict[str, Any]:
        """reminder_notification イベントの data を返す（timestamp は作成時刻）。"""

        return {
            "id": int(self.id),
            "type": self.type,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "timestamp": format_iso8601_utc(self.created_at),
        }

    def to_api_dict(self) -> dict[str, Any]:
        """API 応答向けの dict を返す。"""

        return {
            "id": int(self.id),
            "user_id": self.user_id,
            "type": self.type,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "title": self.title,
            "message": self.message,
            "priority": self.priority,
            "read": bool(self.read),
            "delivered": bool(self.delivered),
            "delivered_at": format_iso8601_utc(self.delivered_at),
            "created_at": format_iso8601_utc(self.created_at),
        }


def _to_record(row: Notification) -> NotificationRecord:
    return NotificationRecord(
        id=int(row.id),
        user_id=str(row.user_id),
        type=str(row.type),
        entity_type=row.entity_type,
        entity_id=(int(row.entity_id) if row.entity_id is not None else None),
        title=str(row.title),
        message=str(row.message),
        priority=str(row.priority),
        read=bool(row.read),
        delivered=bool(row.delivered),
        delivered_at=(int(row.delivered_at) if row.delivered_at is not None else None),
        created_at=int(row.created_at),
    )


class OfflineNotificationQueue:
    """オフライン通知の永続キュー。"""

    def __init__(self, *, clock: ClockService | None = None) -> None:
        self.clock = clock or get_clock_service()

    def enqueue(self, user_id: str, payload: dict[str, Any]) -> NotificationRecord:
        """
        通知を delivered=False で保存する。

        Raises:
            ValidationError: user_id / title / message が空、または type / priority が不正。
        """

        uid = str(user_id or "").strip()
        if not uid:
            raise ValidationError("user_id is required")
        data = dict(payload or {})
        title = str(data.get("title") or "").strip()
        message = str(data.get("message") or "").strip()
        if not title or not message:
            raise ValidationError("notification title and message are required")

        ntype = str(data.get("type") or "reminder")
        if ntype not in NOTIFICATION_TYPES:
            raise ValidationError(f"notification type must be one of {', '.join(NOTIFICATION_TYPES)}")
        priority = str(data.get("priority") or "medium")
        if priority not in NOTIFICATION_PRIORITIES:
            raise ValidationError(f"notification priority must be one of {', '.join(NOTIFICATION_PRIORITIES)}")

        entity_type = data.get("entityType", data.get("entity_type"))
        entity_id = data.get("entityId", data.get("entity_id"))

        with session_scope() as db:
            row = Notification(
                user_id=uid,
                type=ntype,
                entity_type=(str(entity_type) if entity_type else None),
                entity_id=(int(entity_id) if entity_id is not None else None),
                title=title,
                message=message,
                priority=priority,
                read=False,
                delivered=False,
                delivered_at=None,
                created_at=int(self.clock.now_utc_ts()),
            )
            db.add(row)
            db.flush()
            record = _to_record(row)

        logger.info("offline notification stored id=%s user_id=%s", record.id, uid)
        return record

    def pending_for_user(self, user_id: str) -> list[NotificationRecord]:
        """未配信の通知を作成順で返す。"""

        with session_scope() as db:
            rows = (
                db.query(Notification)
                .filter(Notification.user_id == str(user_id), Notification.delivered.is_(False))
                .order_by(Notification.created_at.asc(), Notification.id.asc())
                .all()
            )
            return [_to_record(r) for r in rows]

    def drain(self, user_id: str, push: PushFunc) -> int:
        """
        未配信の通知を作成順に push し、送れたものから delivered=True にする。

        push が False を返す / DeliveryError を送出した時点で打ち切る（残りは pending のまま）。

        Returns:
            delivered にした件数。
        """

        uid = str(user_id or "").strip()
        if not uid:
            raise ValidationError("user_id is required")

        pending = self.pending_for_user(uid)
        if not pending:
            logger.debug("no pending notifications user_id=%s", uid)
            return 0

        delivered = 0
        for record in pending:
            try:
                ok = bool(push(record.to_event_data()))
            except DeliveryError as exc:
                logger.warning("pending notification push failed id=%s user_id=%s: %s", record.id, uid, str(exc))
                ok = False
            if not ok:
                break
            if self._mark_delivered(record.id):
                delivered += 1

        logger.info("pending notifications sent user_id=%s delivered=%s pending=%s", uid, delivered, len(pending))
        return delivered

    def _mark_delivered(self, notification_id: int) -> bool:
        with session_scope() as db:
            count = (
                db.query(Notification)
                .filter(Notification.id == int(notification_id), Notification.delivered.is_(False))
                .update(
                    {Notification.delivered: True, Notification.delivered_at: int(self.clock.now_utc_ts())},
                    synchronize_session=False,
                )
            )
        return bool(count)

    def mark_read(self, notification_id: int, user_id: str | None = None) -> NotificationRecord:
        """
        通知を既読にする。

        user_id を指定した場合は所有者も照合する（他人の通知は NotFoundError）。
        """

        with session_scope() as db:
            row = db.get(Notification, int(notification_id))
            if row is None or (user_id is not None and str(row.user_id) != str(user_id)):
                raise NotFoundError(f"notification not found: id={notification_id}")
            row.read = True
            db.flush()
            record = _to_record(row)

        logger.info("notification marked as read id=%s", record.id)
        return record

    def list_for_user(self, user_id: str, *, unread_only: bool = False, limit: int = 50) -> list[NotificationRecord]:
        """ユーザーの通知を新しい順で返す。"""

        with session_scope() as db:
            q = db.query(Notification).filter(Notification.user_id == str(user_id))
            if unread_only:
                q = q.filter(Notification.read.is_(False))
            rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(int(limit)).all()
            return [_to_record(r) for r in rows]

    def purge_delivered_before(self, cutoff_ts: int) -> int:
        """配信済みで delivered_at < cutoff の通知を削除し、件数を返す。"""

        with session_scope() as db:
            count = (
                db.query(Notification)
                .filter(Notification.delivered.is_(True), Notification.delivered_at < int(cutoff_ts))
                .delete(synchronize_session=False)
            )
        return int(count or 0)
