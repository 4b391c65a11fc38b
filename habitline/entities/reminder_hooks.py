"""
エンティティ保存に付随するリマインダー操作

タスク / 習慣の保存・無効化・削除のあとに呼ぶ。

方針:
- リマインダー側の失敗でエンティティ側の保存を失敗させない。
  例外はここでログに残して握り、None / 0 を返す。
- 習慣は reminder_time（HH:MM, UTC）に毎日発火する recurring リマインダーを1本だけ持つ。
- タスクは reminder_date がある間だけ one-time リマインダーを1本持つ。
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from habitline.reminders.models import STATUS_ACTIVE, TYPE_ONE_TIME, TYPE_RECURRING
from habitline.reminders.repo import ReminderRecord
from habitline.reminders.service import ReminderService, get_reminder_service


logger = logging.getLogger(__name__)

_TASK_DONE_STATUS = "done"


def next_habit_reminder_date(reminder_time: str, from_ts: int) -> int:
    """
    from_ts より後で最初に来る reminder_time（HH:MM, UTC）の UNIX 秒を返す。

    今日の時刻が過ぎていれば（同時刻も含む）翌日にする。

    Raises:
        ValueError: HH:MM として読めない。
    """

    text = str(reminder_time or "").strip()
    parts = text.split(":")
    if len(parts) != 2:
        raise ValueError(f"reminder_time must be HH:MM: {reminder_time!r}")
    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours <= 23 and 0 <= minutes <= 59):
        raise ValueError(f"reminder_time out of range: {reminder_time!r}")

    base = datetime.fromtimestamp(int(from_ts), tz=timezone.utc)
    candidate = base.replace(hour=hours, minute=minutes, second=0, microsecond=0)
    if candidate <= base:
        candidate += timedelta(days=1)
    return int(candidate.timestamp())


def _active_reminder(
    service: ReminderService,
    user_id: str,
    entity_type: str,
    entity_id: int,
) -> Optional[ReminderRecord]:
    for record in service.get_entity_reminders(user_id, entity_type, entity_id):
        if record.status == STATUS_ACTIVE:
            return record
    return None


def on_task_saved(
    user_id: str,
    task_id: int,
    *,
    reminder_date: Optional[int],
    status: str = "todo",
    service: ReminderService | None = None,
) -> Optional[ReminderRecord]:
    """
    タスク保存後にリマインダーを合わせる。

    - reminder_date あり & 未完了: active があれば日時を更新、無ければ one-time を作成。
    - reminder_date なし / 完了済み: active をキャンセル。
    """

    try:
        service = service or get_reminder_service()
        existing = _active_reminder(service, user_id, "task", task_id)

        if reminder_date is None or str(status) == _TASK_DONE_STATUS:
            if existing is not None:
                service.cancel_reminder(existing.id)
            return None

        if existing is not None:
            return service.update_reminder(existing.id, {"reminder_date": int(reminder_date)})
        return service.create_reminder(
            user_id,
            "task",
            task_id,
            {"reminder_date": int(reminder_date), "reminder_type": TYPE_ONE_TIME},
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("task reminder sync failed task_id=%s: %s", task_id, str(exc))
        return None


def on_habit_saved(
    user_id: str,
    habit_id: int,
    *,
    name: str,
    reminder_enabled: bool,
    reminder_time: str,
    is_active: bool = True,
    now_ts: int | None = None,
    service: ReminderService | None = None,
) -> Optional[ReminderRecord]:
    """
    習慣の作成/更新後にリマインダーを合わせる。

    有効なら毎日 reminder_time に発火する recurring を1本用意し、無効ならキャンセルする。
    """

    try:
        service = service or get_reminder_service()
        existing = _active_reminder(service, user_id, "habit", habit_id)

        if not (reminder_enabled and is_active):
            if existing is not None:
                service.cancel_reminder(existing.id)
            return None

        base_ts = int(now_ts) if now_ts is not None else int(service.repo.clock.now_utc_ts())
        data = {
            "reminder_date": next_habit_reminder_date(reminder_time, base_ts),
            "metadata": {
                "title": f"Habit Reminder: {name}",
                "message": f"Time for your habit: {name}!",
            },
        }
        if existing is not None:
            return service.update_reminder(existing.id, data)

        data["reminder_type"] = TYPE_RECURRING
        data["recurrence"] = {"frequency": "daily", "interval": 1}
        return service.create_reminder(user_id, "habit", habit_id, data)
    except Exception as exc:  # noqa: BLE001
        logger.error("habit reminder sync failed habit_id=%s: %s", habit_id, str(exc))
        return None


def on_habit_deactivated(habit_id: int, *, service: ReminderService | None = None) -> int:
    """習慣の無効化後に active なリマインダーをキャンセルする。"""

    return on_entity_deleted("habit", habit_id, service=service)


def on_entity_deleted(entity_type: str, entity_id: int, *, service: ReminderService | None = None) -> int:
    """
    エンティティ削除後に active なリマインダーをすべてキャンセルする。

    Returns:
        キャンセルした件数（失敗時は 0）。
    """

    try:
        service = service or get_reminder_service()
        return service.cancel_entity_reminders(entity_type, entity_id)
    except Exception as exc:  # noqa: BLE001
        logger.error("reminder cancel failed entity=%s:%s: %s", entity_type, entity_id, str(exc))
        return 0
