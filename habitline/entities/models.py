"""
リマインダー対象エンティティの ORM モデル定義

CRUD はこのパッケージの責務ではない。リマインダーエンジンが必要とするのは
「ID で引けること」と「表示名（title/name/text）を読めること」だけなので、
列はそれに必要な最小限に留める。
"""

from __future__ import annotations

from typing import Optional

from sqlalchemy import Boolean, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from habitline.storage.db import Base


class Task(Base):
    """タスク。"""

    __tablename__ = "tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="todo")  # todo/done
    due_date: Mapped[Optional[int]] = mapped_column(Integer)
    reminder_date: Mapped[Optional[int]] = mapped_column(Integer)


class Habit(Base):
    """習慣。reminder_time（HH:MM）に毎日リマインドする。"""

    __tablename__ = "habits"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    reminder_time: Mapped[str] = mapped_column(Text, nullable=False, default="09:00")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Reflection(Base):
    """振り返り（日記）。"""

    __tablename__ = "reflections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)


class Memory(Base):
    """メモ。"""

    __tablename__ = "memories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")


class Prompt(Base):
    """振り返り用の問いかけ。共有データなので user_id は持たない。"""

    __tablename__ = "prompts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False, default="general")
