"""
依存オブジェクトの取得。

目的:
    - FastAPI の Depends で使う取得処理を1箇所に寄せる。
    - EventStream / ReminderService は create_app() で組み立てて app.state に置く。
"""

from __future__ import annotations

from fastapi import Request

from habitline.reminders.notifications import OfflineNotificationQueue
from habitline.reminders.service import ReminderService
from habitline.runtime.event_stream import EventStream


def get_reminder_service_dep(request: Request) -> ReminderService:
    """
    app.state の ReminderService を Depends 用に返す。
    """

    return request.app.state.reminder_service


def get_notification_queue_dep(request: Request) -> OfflineNotificationQueue:
    """
    オフライン通知キューを Depends 用に返す。
    """

    return request.app.state.reminder_service.notification_queue


def get_event_stream_dep(request: Request) -> EventStream:
    """
    app.state の EventStream を Depends 用に返す。
    """

    return request.app.state.event_stream
