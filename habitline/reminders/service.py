"""
リマインダーサービス（エンティティ側 / API から呼ぶ窓口）

目的:
    - 作成/更新/キャンセル/一覧/集計/スヌーズを1つの窓口にまとめる。
    - 定期実行（tick / 保持期間の掃除）はスケジューラへ委譲する。

NOTE:
    - ここでは例外を握りつぶさない（API では 400/404 に変換する）。
    - エンティティ保存に付随する呼び出しは entities/reminder_hooks.py 側でログして継続する。
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from habitline.core.clock import ClockService, get_clock_service
from habitline.entities.registry import EntityRegistry, get_entity_registry
from habitline.reminders.notifications import OfflineNotificationQueue
from habitline.reminders.repo import ReminderRecord, ReminderRepository
from habitline.reminders.scheduler import DeliveryChannel, ReminderScheduler, TickResult


logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_MINUTES = 15


class ReminderService:
    """リマインダー操作の窓口。"""

    def __init__(
        self,
        *,
        repo: ReminderRepository,
        notification_queue: OfflineNotificationQueue,
        scheduler: ReminderScheduler,
    ) -> None:
        self.repo = repo
        self.notification_queue = notification_queue
        self.scheduler = scheduler

    # --- 明示操作 ---

    def create_reminder(
        self,
        user_id: str,
        entity_type: str,
        entity_id: int,
        data: dict[str, Any],
    ) -> ReminderRecord:
        """リマインダーを作成する（ValidationError / NotFoundError はそのまま送出）。"""

        return self.repo.create(user_id, entity_type, entity_id, data)

    def update_reminder(self, reminder_id: int, data: dict[str, Any]) -> ReminderRecord:
        """reminder_date / reminder_type / recurrence / metadata を更新する。"""

        return self.repo.update(reminder_id, data)

    def cancel_reminder(self, reminder_id: int) -> ReminderRecord:
        """リマインダーをキャンセルする（何度呼んでもよい）。"""

        return self.repo.cancel(reminder_id)

    def snooze_reminder(self, reminder_id: int, minutes: int = DEFAULT_SNOOZE_MINUTES) -> ReminderRecord:
        """active のリマインダーを minutes 分後へ延期する。"""

        return self.repo.snooze(reminder_id, minutes)

    def cancel_entity_reminders(self, entity_type: str, entity_id: int) -> int:
        """1エンティティの active リマインダーをすべてキャンセルする。"""

        return self.repo.cancel_for_entity(entity_type, entity_id)

    def get_reminder(self, reminder_id: int) -> ReminderRecord:
        return self.repo.get(reminder_id)

    def get_user_reminders(self, user_id: str, entity_type: str | None = None) -> list[ReminderRecord]:
        """ユーザーのリマインダー一覧（reminder_date 昇順）。"""

        return self.repo.list_for_user(user_id, entity_type)

    def get_entity_reminders(self, user_id: str, entity_type: str, entity_id: int) -> list[ReminderRecord]:
        return self.repo.find_for_entity(user_id, entity_type, entity_id)

    def get_reminder_stats(self, user_id: str) -> dict[str, Any]:
        """状態別 / 種別ごとの件数。"""

        return self.repo.stats(user_id)

    # --- 定期実行 ---

    def tick(self) -> Optional[TickResult]:
        """期限到来リマインダーを処理する（periodic task から to_thread で呼ぶ）。"""

        return self.scheduler.tick()

    def sweep_retention(self) -> dict[str, int]:
        """保持期間を過ぎた行を削除する。"""

        return self.scheduler.sweep_retention()


def build_reminder_service(
    *,
    channel: DeliveryChannel,
    notification_queue: OfflineNotificationQueue | None = None,
    registry: EntityRegistry | None = None,
    clock: ClockService | None = None,
    retention_days: int = 30,
) -> ReminderService:
    """既定の部品でサービスを組み立てる。"""

    registry = registry or get_entity_registry()
    clock = clock or get_clock_service()
    notification_queue = notification_queue or OfflineNotificationQueue(clock=clock)
    repo = ReminderRepository(registry=registry, clock=clock)
    scheduler = ReminderScheduler(
        repo=repo,
        registry=registry,
        notification_queue=notification_queue,
        channel=channel,
        clock=clock,
        retention_days=retention_days,
    )
    return ReminderService(repo=repo, notification_queue=notification_queue, scheduler=scheduler)


_reminder_service: ReminderService | None = None


def set_reminder_service(service: ReminderService | None) -> None:
    """アプリ起動時に組み立てたサービスを登録する（None で解除）。"""

    global _reminder_service
    _reminder_service = service


def get_reminder_service() -> ReminderService:
    """登録済みのリマインダーサービスを返す。"""

    if _reminder_service is None:
        raise RuntimeError("ReminderService is not initialized")
    return _reminder_service
