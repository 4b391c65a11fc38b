"""
FastAPI エントリポイント

Habitline APIサーバーのメインモジュール。
設定・DB初期化、配信/スケジューラの組み立て、ルーター登録、起動/終了イベントの登録を行う。
"""

from __future__ import annotations

import logging
import pathlib

from fastapi import FastAPI

from habitline.app_bootstrap import bootstrap_config, register_http_routes, register_lifecycle_hooks
from habitline.config import Config
from habitline.core.clock import ClockService, get_clock_service
from habitline.reminders.notifications import OfflineNotificationQueue
from habitline.reminders.service import build_reminder_service, set_reminder_service
from habitline.runtime.event_stream import EventStream


logger = logging.getLogger(__name__)


def create_app(
    config: Config | None = None,
    *,
    config_path: str | pathlib.Path | None = None,
    clock: ClockService | None = None,
) -> FastAPI:
    """
    アプリ生成と初期化を行う。
    設定/DB -> 配信チャネル -> リマインダーサービス -> ルータ/ライフサイクル登録の順で実行する。
    """

    # --- 1. 設定・ログ・DB ---
    cfg = bootstrap_config(config, config_path=config_path)
    clock = clock or get_clock_service()

    # --- 2. 配信チャネルとリマインダーサービスを組み立てる ---
    notification_queue = OfflineNotificationQueue(clock=clock)
    event_stream = EventStream(
        notification_queue=notification_queue,
        send_timeout_seconds=cfg.delivery_send_timeout_seconds,
    )
    reminder_service = build_reminder_service(
        channel=event_stream,
        notification_queue=notification_queue,
        clock=clock,
        retention_days=cfg.retention_days,
    )
    # NOTE: エンティティ側フック（entities/reminder_hooks.py）はグローバル登録から参照する。
    set_reminder_service(reminder_service)

    # --- 3. FastAPI アプリ ---
    app = FastAPI(title="Habitline API")
    app.state.event_stream = event_stream
    app.state.reminder_service = reminder_service

    register_http_routes(app)
    register_lifecycle_hooks(
        app,
        config=cfg,
        event_stream=event_stream,
        reminder_service=reminder_service,
    )
    logger.info("habitline app created", extra={"db_path": cfg.db_path})
    return app
