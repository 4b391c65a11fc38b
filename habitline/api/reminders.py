"""
/reminders エンドポイント

リマインダーの作成/一覧/集計/更新/キャンセル/スヌーズを受け付ける。
ユーザーは X-User-Id ヘッダで識別し、他人のリマインダーは 404 として扱う。
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from habitline import schemas
from habitline.api.errors import to_http_exception
from habitline.api.http_auth import require_user_id
from habitline.deps import get_reminder_service_dep
from habitline.reminders.errors import NotFoundError, ReminderError
from habitline.reminders.repo import ReminderRecord
from habitline.reminders.service import ReminderService


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reminders", tags=["reminders"])


def _to_item(record: ReminderRecord) -> schemas.ReminderItem:
    return schemas.ReminderItem(**record.to_api_dict())


def _get_owned(service: ReminderService, reminder_id: int, user_id: str) -> ReminderRecord:
    """本人のリマインダーだけを返す（他人のものは存在しない扱い）。"""

    record = service.get_reminder(reminder_id)
    if record.user_id != user_id:
        raise NotFoundError(f"reminder not found: id={reminder_id}")
    return record


@router.post("", response_model=schemas.ReminderItem, status_code=status.HTTP_201_CREATED)
def create_reminder(
    request: schemas.ReminderCreateRequest,
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.ReminderItem:
    """リマインダーを作成する。"""

    data = request.model_dump(exclude={"entity_type", "entity_id"}, exclude_none=True)
    try:
        record = service.create_reminder(user_id, request.entity_type, request.entity_id, data)
    except ReminderError as exc:
        raise to_http_exception(exc) from exc
    return _to_item(record)


@router.get("", response_model=schemas.RemindersListResponse)
def list_reminders(
    entity_type: Optional[str] = Query(default=None),
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.RemindersListResponse:
    """本人のリマインダー一覧（reminder_date 昇順）を返す。"""

    records = service.get_user_reminders(user_id, entity_type)
    return schemas.RemindersListResponse(items=[_to_item(r) for r in records])


@router.get("/stats", response_model=schemas.ReminderStatsResponse)
def reminder_stats(
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.ReminderStatsResponse:
    """状態別 / 種別ごとの件数を返す。"""

    return schemas.ReminderStatsResponse(**service.get_reminder_stats(user_id))


@router.patch("/{reminder_id}", response_model=schemas.ReminderItem)
def update_reminder(
    reminder_id: int,
    request: schemas.ReminderUpdateRequest,
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.ReminderItem:
    """送られた項目だけを更新する。"""

    fields = request.model_dump(exclude_unset=True)
    if not fields:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields to update")
    try:
        _get_owned(service, reminder_id, user_id)
        record = service.update_reminder(reminder_id, fields)
    except ReminderError as exc:
        raise to_http_exception(exc) from exc
    return _to_item(record)


@router.patch("/{reminder_id}/cancel", response_model=schemas.ReminderItem)
def cancel_reminder(
    reminder_id: int,
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.ReminderItem:
    """リマインダーをキャンセルする（キャンセル済みでも 200）。"""

    try:
        _get_owned(service, reminder_id, user_id)
        record = service.cancel_reminder(reminder_id)
    except ReminderError as exc:
        raise to_http_exception(exc) from exc
    return _to_item(record)


@router.patch("/{reminder_id}/snooze", response_model=schemas.ReminderItem)
def snooze_reminder(
    reminder_id: int,
    request: Optional[schemas.ReminderSnoozeRequest] = Body(default=None),
    user_id: str = Depends(require_user_id),
    service: ReminderService = Depends(get_reminder_service_dep),
) -> schemas.ReminderItem:
    """active のリマインダーを延期する（既定 15 分）。"""

    minutes = int(request.minutes) if request is not None else 15
    try:
        _get_owned(service, reminder_id, user_id)
        record = service.snooze_reminder(reminder_id, minutes)
    except ReminderError as exc:
        raise to_http_exception(exc) from exc
    return _to_item(record)
