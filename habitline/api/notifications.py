"""
/notifications エンドポイント

オフライン通知（リアルタイム配信できずに保存された通知）の一覧と既読化。
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from habitline import schemas
from habitline.api.errors import to_http_exception
from habitline.api.http_auth import require_user_id
from habitline.deps import get_notification_queue_dep
from habitline.reminders.errors import ReminderError
from habitline.reminders.notifications import OfflineNotificationQueue


router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=schemas.NotificationsListResponse)
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    user_id: str = Depends(require_user_id),
    queue: OfflineNotificationQueue = Depends(get_notification_queue_dep),
) -> schemas.NotificationsListResponse:
    """本人の通知を新しい順で返す。"""

    records = queue.list_for_user(user_id, unread_only=unread_only, limit=limit)
    return schemas.NotificationsListResponse(items=[schemas.NotificationItem(**r.to_api_dict()) for r in records])


@router.patch("/{notification_id}/read", response_model=schemas.NotificationItem)
def mark_notification_read(
    notification_id: int,
    user_id: str = Depends(require_user_id),
    queue: OfflineNotificationQueue = Depends(get_notification_queue_dep),
) -> schemas.NotificationItem:
    """通知を既読にする。"""

    try:
        record = queue.mark_read(notification_id, user_id)
    except ReminderError as exc:
        raise to_http_exception(exc) from exc
    return schemas.NotificationItem(**record.to_api_dict())
