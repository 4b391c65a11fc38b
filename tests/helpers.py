"""テスト共通の部品（一時DB / 固定時計 / 偽の配信チャネル）。"""

from __future__ import annotations

import shutil
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

from habitline.core.clock import FixedClock
from habitline.entities.models import Habit, Task
from habitline.entities.registry import build_default_registry
from habitline.reminders.errors import DeliveryError
from habitline.reminders.notifications import OfflineNotificationQueue
from habitline.reminders.repo import ReminderRepository
from habitline.storage.db import dispose_db, get_db_url, init_db, session_scope


def utc_ts(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> int:
    return int(datetime(year, month, day, hour, minute, tzinfo=timezone.utc).timestamp())


# 2026-01-15 (木) 09:00 UTC
T0 = utc_ts(2026, 1, 15, 9, 0)
DAY = 86400


class FakeChannel:
    """send_to_user_threadsafe だけを持つ配信チャネル。online のユーザーにだけ届く。"""

    def __init__(self, online=(), error: Exception | None = None) -> None:
        self.online = set(online)
        self.error = error
        self.sent: list[tuple[str, str, dict]] = []

    def send_to_user_threadsafe(self, user_id, event, data):
        if self.error is not None:
            raise self.error
        if user_id not in self.online:
            return False
        self.sent.append((user_id, event, data))
        return True


class UnavailableChannel(FakeChannel):
    def __init__(self) -> None:
        super().__init__(error=DeliveryError("event stream is not installed"))


class DbTestCase(unittest.TestCase):
    """一時 SQLite と固定時計を用意する。"""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        init_db(get_db_url(Path(self.temp_dir) / "test.db"))
        self.clock = FixedClock(T0)
        self.registry = build_default_registry()
        self.repo = ReminderRepository(registry=self.registry, clock=self.clock)
        self.queue = OfflineNotificationQueue(clock=self.clock)

    def tearDown(self):
        dispose_db()
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def add_task(self, user_id: str = "u1", title: str = "Buy milk") -> int:
        with session_scope() as db:
            row = Task(user_id=user_id, title=title, status="todo")
            db.add(row)
            db.flush()
            return int(row.id)

    def add_habit(self, user_id: str = "u1", name: str = "Meditate", reminder_time: str = "09:30") -> int:
        with session_scope() as db:
            row = Habit(user_id=user_id, name=name, reminder_enabled=True, reminder_time=reminder_time, is_active=True)
            db.add(row)
            db.flush()
            return int(row.id)

    def delete_entity(self, model, entity_id: int) -> None:
        with session_scope() as db:
            row = db.get(model, int(entity_id))
            db.delete(row)

    def one_time(self, entity_id: int, when: int, user_id: str = "u1", entity_type: str = "task", **extra):
        data = {"reminder_date": when, "reminder_type": "one-time"}
        data.update(extra)
        return self.repo.create(user_id, entity_type, entity_id, data)

    def daily(self, entity_id: int, when: int, user_id: str = "u1", entity_type: str = "task", **recurrence):
        rule = {"frequency": "daily", "interval": 1}
        rule.update(recurrence)
        return self.repo.create(
            user_id,
            entity_type,
            entity_id,
            {"reminder_date": when, "reminder_type": "recurring", "recurrence": rule},
        )
