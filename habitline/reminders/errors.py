"""
リマインダー機能の例外。

- ValidationError / NotFoundError は呼び出し元の責任（API では 400 / 404 に変換する）。
- DeliveryError は配信経路の失敗。スケジューラ内でオフラインキューへ退避して回収する。
- SchedulerTickError は tick 内の1件分の失敗。記録して次の件へ進む。
"""

from __future__ import annotations


class ReminderError(Exception):
    """リマインダー機能の例外の基底。"""


class ValidationError(ReminderError):
    """必須項目の欠落や不正な値。"""


class NotFoundError(ReminderError):
    """参照先のリマインダー / エンティティ / 通知が存在しない。"""


class DeliveryError(ReminderError):
    """リアルタイム配信経路が使えない。"""


class SchedulerTickError(ReminderError):
    """tick 内で1件のリマインダー処理に失敗した。"""

    def __init__(self, reminder_id: int, message: str) -> None:
        super().__init__(f"reminder_id={reminder_id}: {message}")
        self.reminder_id = int(reminder_id)
