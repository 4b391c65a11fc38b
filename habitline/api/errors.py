"""
リマインダー例外 -> HTTPException の変換。
"""

from __future__ import annotations

from fastapi import HTTPException, status

from habitline.reminders.errors import NotFoundError, ReminderError, ValidationError


def to_http_exception(exc: ReminderError) -> HTTPException:
    """ValidationError は 400、NotFoundError は 404、それ以外は 500 にする。"""

    if isinstance(exc, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Reminder operation failed")
