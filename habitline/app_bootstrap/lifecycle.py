"""
アプリライフサイクル登録。

startup:
    1. uvicorn access log からヘルスチェックを外す
    2. EventStream にイベントループを登録する（スケジューラスレッドからの送信に使う）
    3. リマインダー tick / 保持期間の掃除を定期実行する
shutdown:
    定期実行を先に止めてから EventStream を外す。外した後に残った送信は DeliveryError になり、オフラインキューへ回る。
"""

from __future__ import annotations

import asyncio
import logging

from fastapi import FastAPI

from habitline.config import Config
from habitline.reminders.service import ReminderService
from habitline.runtime.event_stream import EventStream
from habitline.runtime.logging import suppress_uvicorn_access_log_paths
from habitline.runtime.periodic import start_periodic_task, stop_periodic_tasks


logger = logging.getLogger(__name__)


def register_lifecycle_hooks(
    app: FastAPI,
    *,
    config: Config,
    event_stream: EventStream,
    reminder_service: ReminderService,
) -> None:
    """FastAPI の startup / shutdown フックを登録する。"""

    @app.on_event("startup")
    async def start_reminder_runtime() -> None:
        """配信チャネルを有効にしてから定期実行を始める。"""

        suppress_uvicorn_access_log_paths("/api/health")
        event_stream.install(asyncio.get_running_loop())

        start_periodic_task(
            app,
            name="periodic_reminders",
            interval_seconds=float(config.reminder_tick_seconds),
            wait_first=True,
            func=reminder_service.tick,
            logger=logger,
        )
        start_periodic_task(
            app,
            name="periodic_retention_sweep",
            interval_seconds=float(config.retention_sweep_seconds),
            wait_first=True,
            func=reminder_service.sweep_retention,
            logger=logger,
        )

    @app.on_event("shutdown")
    async def stop_reminder_runtime() -> None:
        """定期実行を止め、配信チャネルを外す。"""

        await stop_periodic_tasks(app, logger=logger)
        event_stream.uninstall()
