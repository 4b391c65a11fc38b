"""
API リクエスト/レスポンスの Pydantic モデル

FastAPI エンドポイントで使用するリクエスト/レスポンスのスキーマ定義。
型の検証はここで行い、業務ルール（entity_type の既知判定、参照先の存在確認など）は
リポジトリ側で ValidationError / NotFoundError として扱う。
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# --- リマインダー（/api/reminders/*） ---


class RecurrenceModel(BaseModel):
    """繰り返し規則。days_of_week は 0=日曜..6=土曜。"""

    model_config = ConfigDict(extra="forbid")

    frequency: str  # daily|weekly|monthly|custom
    interval: int = Field(default=1, ge=1)
    days_of_week: List[int] = Field(default_factory=list)
    end_date: Optional[Union[int, str]] = None  # UNIX秒 または ISO 8601

    @field_validator("days_of_week")
    @classmethod
    def _validate_days(cls, v: List[int]) -> List[int]:
        """曜日は 0..6 のみ許可する。"""
        for d in v:
            if not 0 <= int(d) <= 6:
                raise ValueError("days_of_week items must be in 0..6")
        return v


class ReminderMetadataModel(BaseModel):
    """通知文面の上書き（無い側は種別テンプレートを使う）。"""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = None
    message: Optional[str] = None


class ReminderCreateRequest(BaseModel):
    """リマインダー作成リクエスト。"""

    model_config = ConfigDict(extra="forbid")

    entity_type: str
    entity_id: int
    reminder_date: Union[int, str]  # UNIX秒 または ISO 8601（TZ無しは UTC）
    reminder_type: str = "one-time"  # one-time|recurring
    recurrence: Optional[RecurrenceModel] = None
    metadata: Optional[ReminderMetadataModel] = None


class ReminderUpdateRequest(BaseModel):
    """リマインダー更新リクエスト（部分更新、送られた項目だけ反映）。"""

    model_config = ConfigDict(extra="forbid")

    reminder_date: Optional[Union[int, str]] = None
    reminder_type: Optional[str] = None
    recurrence: Optional[RecurrenceModel] = None
    metadata: Optional[ReminderMetadataModel] = None


class ReminderSnoozeRequest(BaseModel):
    """スヌーズ（既定 15 分）。"""

    model_config = ConfigDict(extra="forbid")

    minutes: int = Field(default=15, ge=1, le=1440)


class ReminderItem(BaseModel):
    """リマインダー1件（一覧/作成/更新の共通レスポンス）。"""

    id: int
    user_id: str
    entity_type: str
    entity_id: int
    reminder_date: str
    reminder_type: str
    recurrence: Optional[Dict[str, Any]] = None
    status: str
    sent_at: Optional[str] = None
    metadata: Optional[Dict[str, Optional[str]]] = None
    created_at: str
    updated_at: str


class RemindersListResponse(BaseModel):
    """リマインダー一覧レスポンス。"""

    items: List[ReminderItem] = Field(default_factory=list)


class ReminderStatsResponse(BaseModel):
    """状態別 / 種別ごとの件数。"""

    total: int
    by_status: Dict[str, int]
    by_type: Dict[str, int]


# --- 通知（/api/notifications/*） ---


class NotificationItem(BaseModel):
    """オフライン通知1件。"""

    id: int
    user_id: str
    type: str
    entity_type: Optional[str] = None
    entity_id: Optional[int] = None
    title: str
    message: str
    priority: str
    read: bool
    delivered: bool
    delivered_at: Optional[str] = None
    created_at: str


class NotificationsListResponse(BaseModel):
    """通知一覧レスポンス。"""

    items: List[NotificationItem] = Field(default_factory=list)


# --- イベントストリーム ---


class ConnectionStatsResponse(BaseModel):
    """WebSocket 接続状況。"""

    total_connections: int
    connected_users: List[str] = Field(default_factory=list)
