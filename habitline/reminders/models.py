"""
リマインダー / オフライン通知の ORM モデル定義

時刻はすべて UTC の UNIX 秒（int）で保持する。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Index, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from habitline.storage.db import Base


# --- 状態/種別の定数 ---
STATUS_ACTIVE = "active"
STATUS_SENT = "sent"
STATUS_CANCELLED = "cancelled"
REMINDER_STATUSES = (STATUS_ACTIVE, STATUS_SENT, STATUS_CANCELLED)
TERMINAL_STATUSES = (STATUS_SENT, STATUS_CANCELLED)

TYPE_ONE_TIME = "one-time"
TYPE_RECURRING = "recurring"
REMINDER_TYPES = (TYPE_ONE_TIME, TYPE_RECURRING)

NOTIFICATION_TYPES = ("reminder", "system", "achievement")
NOTIFICATION_PRIORITIES = ("low", "medium", "high")


class Reminder(Base):
    """エンティティ1件に紐づくスケジュール済み通知。

    - entity_type + entity_id でエンティティを指す（型付き外部キーは持たない）
    - status は active のみが遷移元になる（sent / cancelled は終端）
    - recurring の場合だけ recurrence_* 列を使う
    """

    __tablename__ = "reminders"
    __table_args__ = (
        Index("ix_reminders_due", "status", "reminder_date"),
        Index("ix_reminders_entity", "user_id", "entity_type", "entity_id"),
    )

    # --- 主キー（挿入順のタイブレークにも使う） ---
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # --- 所有者と対象エンティティ ---
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[str] = mapped_column(Text, nullable=False)  # task/habit/reflection/memory/prompt
    entity_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # --- 発火時刻と種別 ---
    reminder_date: Mapped[int] = mapped_column(Integer, nullable=False)
    reminder_type: Mapped[str] = mapped_column(Text, nullable=False, default=TYPE_ONE_TIME)

    # --- 繰り返し（recurring のみ） ---
    recurrence_frequency: Mapped[Optional[str]] = mapped_column(Text)  # daily/weekly/monthly/custom
    recurrence_interval: Mapped[Optional[int]] = mapped_column(Integer)
    recurrence_days_of_week_json: Mapped[Optional[str]] = mapped_column(Text)  # JSON配列（0=日曜..6=土曜）
    recurrence_end_date: Mapped[Optional[int]] = mapped_column(Integer)

    # --- 状態 ---
    status: Mapped[str] = mapped_column(Text, nullable=False, default=STATUS_ACTIVE)
    sent_at: Mapped[Optional[int]] = mapped_column(Integer)

    # --- 表示の上書き ---
    metadata_title: Mapped[Optional[str]] = mapped_column(Text)
    metadata_message: Mapped[Optional[str]] = mapped_column(Text)

    # --- タイムスタンプ ---
    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[int] = mapped_column(Integer, nullable=False)


class Notification(Base):
    """オフライン通知キューのエントリ。

    リアルタイム配信に失敗したときだけ作られ、再接続時の drain で delivered=True になる。
    """

    __tablename__ = "notifications"
    __table_args__ = (
        Index("ix_notifications_user_delivered", "user_id", "delivered"),
        Index("ix_notifications_user_read", "user_id", "read"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False, default="reminder")

    # --- 関連エンティティ（任意） ---
    entity_type: Mapped[Optional[str]] = mapped_column(Text)
    entity_id: Mapped[Optional[int]] = mapped_column(Integer)

    # --- 本文 ---
    title: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(Text, nullable=False, default="medium")

    # --- 既読/配信 ---
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    delivered_at: Mapped[Optional[int]] = mapped_column(Integer)

    created_at: Mapped[int] = mapped_column(Integer, nullable=False)
