"""
リマインダースケジューラ（期限到来の処理 / 保持期間の掃除）

実装方針:
- サーバ側の定期タスクから tick() を呼び出す（to_thread で別スレッド実行）。
- tick() は重複実行しない（実行中なら即 return して None を返す）。
- 1件ごとの処理は独立させる。1件の失敗は SchedulerTickError としてログに残し、
  その行は active のまま次回 tick で再試行される。
- 配信はまず接続中クライアントへ直接送り、送れなければオフラインキューへ退避する。
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from habitline.core.clock import ClockService, get_clock_service
from habitline.core.time_utils import format_iso8601_utc
from habitline.entities.registry import EntityRef, EntityRegistry
from habitline.reminders.errors import DeliveryError, SchedulerTickError
from habitline.reminders.notifications import OfflineNotificationQueue
from habitline.reminders.recurrence import is_within_end_date, next_fire_after
from habitline.reminders.repo import ReminderRecord, ReminderRepository
from habitline.runtime.event_stream import REMINDER_NOTIFICATION_EVENT
from habitline.storage.db import session_scope


logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400

# --- エンティティ種別ごとの文面（{title} に表示名が入る） ---
_TEMPLATES: dict[str, tuple[str, str]] = {
    "task": ("Task Reminder: {title}", "Don't forget to complete: {title}"),
    "habit": ("Habit Reminder: {title}", "Time for your habit: {title}!"),
    "reflection": ("Reflection Reminder: {title}", "Take a moment to revisit: {title}"),
    "memory": ("Memory Reminder: {title}", "Remember this: {title}"),
    "prompt": ("Prompt Reminder: {title}", "Time to answer: {title}"),
}
_FALLBACK_TEMPLATE = ("Reminder: {title}", "You have a reminder: {title}")


class DeliveryChannel(Protocol):
    """スケジューラが使う配信口（EventStream が満たす）。"""

    def send_to_user_threadsafe(self, user_id: str, event: str, data: dict[str, Any]) -> bool: ...


@dataclass
class TickResult:
    """1回の tick の集計。"""

    due: int = 0
    delivered: int = 0
    queued: int = 0
    sent: int = 0
    rescheduled: int = 0
    cancelled: int = 0
    failed: int = 0


def build_notification_text(entity_type: str, display_name: str, reminder: ReminderRecord) -> tuple[str, str]:
    """
    通知のタイトル/本文を返す。

    reminder の metadata にあればそれを優先し、無い側だけ種別テンプレートで埋める。
    """

    title_tpl, message_tpl = _TEMPLATES.get(str(entity_type), _FALLBACK_TEMPLATE)
    name = str(display_name or "").strip() or f"{entity_type} #{reminder.entity_id}"
    title = reminder.metadata_title or title_tpl.format(title=name)
    message = reminder.metadata_message or message_tpl.format(title=name)
    return title, message


class ReminderScheduler:
    """期限到来リマインダーの配信と状態遷移を行う。"""

    def __init__(
        self,
        *,
        repo: ReminderRepository,
        registry: EntityRegistry,
        notification_queue: OfflineNotificationQueue,
        channel: DeliveryChannel,
        clock: ClockService | None = None,
        retention_days: int = 30,
    ) -> None:
        if int(retention_days) < 1:
            raise ValueError("retention_days must be >= 1")
        self.repo = repo
        self.registry = registry
        self.notification_queue = notification_queue
        self.channel = channel
        self.clock = clock or get_clock_service()
        self.retention_days = int(retention_days)

        self._lock = threading.Lock()
        self._running = False

    # --- tick ---

    def tick(self) -> Optional[TickResult]:
        """
        期限到来の active リマインダーを reminder_date 順に処理する。

        Returns:
            集計結果。別の tick が実行中でスキップした場合は None。
        """

        with self._lock:
            if self._running:
                logger.debug("reminder tick skipped; previous tick still running")
                return None
            self._running = True

        try:
            now_ts = int(self.clock.now_utc_ts())
            result = TickResult()
            due = self.repo.find_due(now_ts)
            result.due = len(due)
            if not due:
                return result

            logger.info("processing due reminders count=%s", len(due))
            for reminder in due:
                try:
                    self._process_one(reminder, now_ts=now_ts, result=result)
                except SchedulerTickError as exc:
                    result.failed += 1
                    logger.exception("reminder processing failed id=%s: %s", exc.reminder_id, str(exc))

            logger.info(
                "reminder tick done due=%s delivered=%s queued=%s sent=%s rescheduled=%s cancelled=%s failed=%s",
                result.due,
                result.delivered,
                result.queued,
                result.sent,
                result.rescheduled,
                result.cancelled,
                result.failed,
            )
            return result
        finally:
            with self._lock:
                self._running = False

    def _process_one(self, reminder: ReminderRecord, *, now_ts: int, result: TickResult) -> None:
        """1件分（エンティティ確認 -> 配信 -> 状態遷移）。例外は SchedulerTickError に包む。"""

        try:
            entity = self._resolve_entity(reminder)
            if entity is None:
                # --- 参照先が消えた（または所有者が違う）: 通知せずに cancelled ---
                if self.repo.mark_cancelled_if_active(reminder.id, now_ts):
                    result.cancelled += 1
                    logger.info(
                        "entity missing; reminder cancelled id=%s entity=%s:%s",
                        reminder.id,
                        reminder.entity_type,
                        reminder.entity_id,
                    )
                return

            data = self._build_payload(reminder, entity, now_ts=now_ts)
            if self._deliver(reminder.user_id, data):
                result.delivered += 1
            else:
                self.notification_queue.enqueue(reminder.user_id, data)
                result.queued += 1

            self._complete(reminder, now_ts=now_ts, result=result)
        except SchedulerTickError:
            raise
        except Exception as exc:  # noqa: BLE001
            raise SchedulerTickError(reminder.id, str(exc)) from exc

    def _resolve_entity(self, reminder: ReminderRecord) -> Optional[EntityRef]:
        """参照先を引く。他ユーザーのエンティティは見つからない扱い。"""

        with session_scope() as db:
            entity = self.registry.find(db, reminder.entity_type, reminder.entity_id)
        if entity is None or not entity.is_owned_by(reminder.user_id):
            return None
        return entity

    def _build_payload(self, reminder: ReminderRecord, entity: EntityRef, *, now_ts: int) -> dict[str, Any]:
        title, message = build_notification_text(entity.entity_type, entity.display_name, reminder)
        return {
            "id": int(reminder.id),
            "type": "reminder",
            "entityType": reminder.entity_type,
            "entityId": int(reminder.entity_id),
            "title": title,
            "message": message,
            "timestamp": format_iso8601_utc(now_ts),
        }

    def _deliver(self, user_id: str, data: dict[str, Any]) -> bool:
        """直接配信を試みる。DeliveryError は「届かなかった」として扱う。"""

        try:
            return bool(self.channel.send_to_user_threadsafe(user_id, REMINDER_NOTIFICATION_EVENT, data))
        except DeliveryError as exc:
            logger.warning("live delivery unavailable user_id=%s: %s", user_id, str(exc))
            return False

    def _complete(self, reminder: ReminderRecord, *, now_ts: int, result: TickResult) -> None:
        """配信後の状態遷移（one-time -> sent / recurring -> 次回 or cancelled）。"""

        if not reminder.is_recurring:
            if self.repo.mark_sent(reminder.id, now_ts):
                result.sent += 1
            return

        next_ts = next_fire_after(reminder.reminder_date, reminder.recurrence, now_ts)
        if next_ts is None or not is_within_end_date(next_ts, reminder.recurrence):
            if self.repo.mark_cancelled_if_active(reminder.id, now_ts):
                result.cancelled += 1
                logger.info("recurring reminder finished id=%s", reminder.id)
            return

        if self.repo.reschedule(reminder.id, next_ts, now_ts):
            result.rescheduled += 1
            logger.info("recurring reminder rescheduled id=%s next=%s", reminder.id, format_iso8601_utc(next_ts))

    # --- 保持期間 ---

    def sweep_retention(self) -> dict[str, int]:
        """
        保持期間（retention_days）を過ぎた終端リマインダーと配信済み通知を削除する。

        Returns:
            {"reminders": 削除件数, "notifications": 削除件数}
        """

        cutoff_ts = int(self.clock.now_utc_ts()) - self.retention_days * _SECONDS_PER_DAY
        reminders = self.repo.purge_terminal_before(cutoff_ts)
        notifications = self.notification_queue.purge_delivered_before(cutoff_ts)
        logger.info(
            "retention sweep done",
            extra={"cutoff": format_iso8601_utc(cutoff_ts), "reminders": reminders, "notifications": notifications},
        )
        return {"reminders": int(reminders), "notifications": int(notifications)}
