"""
reminders テーブル用 DB アクセス。

目的:
    - リマインダーの保存契約（作成/更新/キャンセル/期限到来の取得）を1箇所に集約する。
    - API / エンティティ側フック / スケジューラで同じ契約を使う。

方針:
    - セッション外へは ORM インスタンスを出さず、ReminderRecord（値オブジェクト）で返す。
    - スケジューラからの状態更新は `status = 'active'` を条件にする。
      tick 中に明示キャンセルが入った場合はキャンセル側が残る。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from habitline.core import common_utils
from habitline.core.clock import ClockService, get_clock_service
from habitline.core.time_utils import format_iso8601_utc, parse_iso8601_to_utc_ts
from habitline.entities.registry import EntityRegistry
from habitline.reminders.errors import NotFoundError, ValidationError
from habitline.reminders.models import (
    REMINDER_STATUSES,
    REMINDER_TYPES,
    STATUS_ACTIVE,
    STATUS_CANCELLED,
    STATUS_SENT,
    TERMINAL_STATUSES,
    TYPE_ONE_TIME,
    TYPE_RECURRING,
    Reminder,
)
from habitline.reminders.recurrence import RecurrenceRule
from habitline.storage.db import session_scope


logger = logging.getLogger(__name__)

# update() で上書きを許す項目
_UPDATABLE_FIELDS = ("reminder_date", "reminder_type", "recurrence", "metadata")


@dataclass(frozen=True)
class ReminderRecord:
    """reminders 行の読み取り専用コピー。"""

    id: int
    user_id: str
    entity_type: str
    entity_id: int
    reminder_date: int
    reminder_type: str
    recurrence: Optional[RecurrenceRule]
    status: str
    sent_at: Optional[int]
    metadata_title: Optional[str]
    metadata_message: Optional[str]
    created_at: int
    updated_at: int

    @property
    def is_recurring(self) -> bool:
        return self.reminder_type == TYPE_RECURRING

    def to_api_dict(self) -> dict[str, Any]:
        """API 応答向けの dict を返す（時刻は ISO 8601 UTC）。"""

        recurrence = None
        if self.recurrence is not None:
            recurrence = self.recurrence.to_dict()
            recurrence["end_date"] = format_iso8601_utc(self.recurrence.end_date)
        metadata = None
        if self.metadata_title or self.metadata_message:
            metadata = {"title": self.metadata_title, "message": self.metadata_message}
        return {
            "id": int(self.id),
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": int(self.entity_id),
            "reminder_date": format_iso8601_utc(self.reminder_date),
            "reminder_type": self.reminder_type,
            "recurrence": recurrence,
            "status": self.status,
            "sent_at": format_iso8601_utc(self.sent_at),
            "metadata": metadata,
            "created_at": format_iso8601_utc(self.created_at),
            "updated_at": format_iso8601_utc(self.updated_at),
        }


def _to_record(row: Reminder) -> ReminderRecord:
    """ORM 行を値オブジェクトへ写す。"""

    recurrence = None
    if row.reminder_type == TYPE_RECURRING and row.recurrence_frequency:
        recurrence = RecurrenceRule(
            frequency=str(row.recurrence_frequency),
            interval=int(row.recurrence_interval or 1),
            days_of_week=tuple(common_utils.parse_json_int_list(row.recurrence_days_of_week_json)),
            end_date=(int(row.recurrence_end_date) if row.recurrence_end_date is not None else None),
        )
    return ReminderRecord(
        id=int(row.id),
        user_id=str(row.user_id),
        entity_type=str(row.entity_type),
        entity_id=int(row.entity_id),
        reminder_date=int(row.reminder_date),
        reminder_type=str(row.reminder_type),
        recurrence=recurrence,
        status=str(row.status),
        sent_at=(int(row.sent_at) if row.sent_at is not None else None),
        metadata_title=row.metadata_title,
        metadata_message=row.metadata_message,
        created_at=int(row.created_at),
        updated_at=int(row.updated_at),
    )


def _coerce_ts(value: Any, *, field: str) -> int:
    """UNIX 秒 / ISO 8601 文字列を UNIX 秒へ正規化する（不正なら ValidationError）。"""

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a timestamp")
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        ts = parse_iso8601_to_utc_ts(value)
        if ts is not None:
            return int(ts)
    raise ValidationError(f"{field} is required and must be a timestamp")


def _apply_recurrence(row: Reminder, rule: Optional[RecurrenceRule]) -> None:
    """繰り返し規則を列へ展開する（None なら全消去）。"""

    if rule is None:
        row.recurrence_frequency = None
        row.recurrence_interval = None
        row.recurrence_days_of_week_json = None
        row.recurrence_end_date = None
        return
    row.recurrence_frequency = rule.frequency
    row.recurrence_interval = int(rule.interval)
    row.recurrence_days_of_week_json = (
        common_utils.json_dumps(list(rule.days_of_week)) if rule.days_of_week else None
    )
    row.recurrence_end_date = rule.end_date


def _extract_metadata(data: dict[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """metadata.title / metadata.message（またはトップレベルの title / message）を取り出す。"""

    meta = data.get("metadata")
    if meta is None:
        meta = {"title": data.get("title"), "message": data.get("message")}
    if not isinstance(meta, dict):
        raise ValidationError("metadata must be an object")
    title = str(meta.get("title") or "").strip() or None
    message = str(meta.get("message") or "").strip() or None
    return title, message


class ReminderRepository:
    """reminders テーブル専用のリポジトリ。"""

    def __init__(self, *, registry: EntityRegistry, clock: ClockService | None = None) -> None:
        self.registry = registry
        self.clock = clock or get_clock_service()

    # --- 作成/参照 ---

    def create(self, user_id: str, entity_type: str, entity_id: int, data: dict[str, Any]) -> ReminderRecord:
        """
        リマインダーを作成する。

        Raises:
            ValidationError: 必須項目の欠落 / 未知の entity_type / 不正な繰り返し規則。
            NotFoundError: 参照先エンティティが存在しない。
        """

        # --- 入力を検証 ---
        uid = str(user_id or "").strip()
        if not uid:
            raise ValidationError("user_id is required")
        etype = str(entity_type or "").strip()
        if not self.registry.is_known(etype):
            raise ValidationError(f"unknown entity type: {entity_type!r}")
        try:
            eid = int(entity_id)
        except (TypeError, ValueError):
            raise ValidationError("entity_id must be an integer") from None

        payload = dict(data or {})
        if payload.get("reminder_date") is None:
            raise ValidationError("reminder_date is required")
        reminder_date = _coerce_ts(payload.get("reminder_date"), field="reminder_date")

        reminder_type = str(payload.get("reminder_type") or TYPE_ONE_TIME)
        if reminder_type not in REMINDER_TYPES:
            raise ValidationError(f"reminder_type must be one of {', '.join(REMINDER_TYPES)}")
        rule = None
        if reminder_type == TYPE_RECURRING:
            if payload.get("recurrence") is None:
                raise ValidationError("recurrence is required for recurring reminders")
            rule = RecurrenceRule.from_dict(payload.get("recurrence"))
        title, message = _extract_metadata(payload)

        now_ts = self.clock.now_utc_ts()
        with session_scope() as db:
            # --- 参照先エンティティの存在と所有者を確認（他人のものは存在しない扱い） ---
            ref = self.registry.find(db, etype, eid)
            if ref is None or not ref.is_owned_by(uid):
                raise NotFoundError(f"{etype} not found: id={eid}")

            row = Reminder(
                user_id=uid,
                entity_type=etype,
                entity_id=eid,
                reminder_date=int(reminder_date),
                reminder_type=reminder_type,
                status=STATUS_ACTIVE,
                sent_at=None,
                metadata_title=title,
                metadata_message=message,
                created_at=int(now_ts),
                updated_at=int(now_ts),
            )
            _apply_recurrence(row, rule)
            db.add(row)
            db.flush()
            record = _to_record(row)

        logger.info(
            "reminder created id=%s user_id=%s entity=%s:%s type=%s",
            record.id,
            record.user_id,
            record.entity_type,
            record.entity_id,
            record.reminder_type,
        )
        return record

    def get(self, reminder_id: int) -> ReminderRecord:
        """ID でリマインダーを返す（無ければ NotFoundError）。"""

        with session_scope() as db:
            row = db.get(Reminder, int(reminder_id))
            if row is None:
                raise NotFoundError(f"reminder not found: id={reminder_id}")
            return _to_record(row)

    def find_due(self, now_ts: int) -> list[ReminderRecord]:
        """
        期限到来の active リマインダーを返す。

        並び順: reminder_date 昇順、同時刻は作成順（id 昇順）。
        """

        with session_scope() as db:
            rows = (
                db.query(Reminder)
                .filter(Reminder.status == STATUS_ACTIVE, Reminder.reminder_date <= int(now_ts))
                .order_by(Reminder.reminder_date.asc(), Reminder.id.asc())
                .all()
            )
            return [_to_record(r) for r in rows]

    def list_for_user(self, user_id: str, entity_type: str | None = None) -> list[ReminderRecord]:
        """ユーザーのリマインダーを reminder_date 昇順で返す。"""

        with session_scope() as db:
            q = db.query(Reminder).filter(Reminder.user_id == str(user_id))
            if entity_type:
                q = q.filter(Reminder.entity_type == str(entity_type))
            rows = q.order_by(Reminder.reminder_date.asc(), Reminder.id.asc()).all()
            return [_to_record(r) for r in rows]

    def find_for_entity(self, user_id: str, entity_type: str, entity_id: int) -> list[ReminderRecord]:
        """1エンティティに紐づくリマインダーを作成順で返す。"""

        with session_scope() as db:
            rows = (
                db.query(Reminder)
                .filter(
                    Reminder.user_id == str(user_id),
                    Reminder.entity_type == str(entity_type),
                    Reminder.entity_id == int(entity_id),
                )
                .order_by(Reminder.id.asc())
                .all()
            )
            return [_to_record(r) for r in rows]

    def stats(self, user_id: str) -> dict[str, Any]:
        """状態別 / 種別ごとの件数を返す（既知のキーは0埋め）。"""

        by_status = {s: 0 for s in REMINDER_STATUSES}
        by_type = {t: 0 for t in REMINDER_TYPES}
        with session_scope() as db:
            rows = db.query(Reminder.status, Reminder.reminder_type).filter(Reminder.user_id == str(user_id)).all()
        for status, reminder_type in rows:
            by_status[str(status)] = by_status.get(str(status), 0) + 1
            by_type[str(reminder_type)] = by_type.get(str(reminder_type), 0) + 1
        return {"total": len(rows), "by_status": by_status, "by_type": by_type}

    # --- 明示操作 ---

    def update(self, reminder_id: int, fields: dict[str, Any]) -> ReminderRecord:
        """
        許可された項目（reminder_date / reminder_type / recurrence / metadata）だけを上書きする。

        それ以外のキーは無視する。status はここでは変えない。
        """

        fields = dict(fields or {})
        payload = {k: v for k, v in fields.items() if k in _UPDATABLE_FIELDS}
        if "metadata" not in fields and ("title" in fields or "message" in fields):
            payload["metadata"] = {"title": fields.get("title"), "message": fields.get("message")}

        with session_scope() as db:
            row = db.get(Reminder, int(reminder_id))
            if row is None:
                raise NotFoundError(f"reminder not found: id={reminder_id}")

            if "reminder_date" in payload:
                row.reminder_date = _coerce_ts(payload["reminder_date"], field="reminder_date")

            if "reminder_type" in payload:
                reminder_type = str(payload["reminder_type"] or "")
                if reminder_type not in REMINDER_TYPES:
                    raise ValidationError(f"reminder_type must be one of {', '.join(REMINDER_TYPES)}")
                row.reminder_type = reminder_type

            if "recurrence" in payload:
                rule = RecurrenceRule.from_dict(payload["recurrence"]) if payload["recurrence"] is not None else None
                _apply_recurrence(row, rule)

            # --- 種別と規則の整合 ---
            if row.reminder_type == TYPE_RECURRING and not row.recurrence_frequency:
                raise ValidationError("recurrence is required for recurring reminders")
            if row.reminder_type == TYPE_ONE_TIME:
                _apply_recurrence(row, None)

            if "metadata" in payload:
                title, message = _extract_metadata({"metadata": payload["metadata"] or {}})
                row.metadata_title = title
                row.metadata_message = message

            row.updated_at = int(self.clock.now_utc_ts())
            db.flush()
            record = _to_record(row)

        logger.info("reminder updated id=%s fields=%s", record.id, sorted(payload.keys()))
        return record

    def cancel(self, reminder_id: int) -> ReminderRecord:
        """
        リマインダーをキャンセルする（状態に関わらず cancelled にする）。

        既に cancelled の場合も成功として扱う。
        """

        with session_scope() as db:
            row = db.get(Reminder, int(reminder_id))
            if row is None:
                raise NotFoundError(f"reminder not found: id={reminder_id}")
            if row.status != STATUS_CANCELLED:
                row.status = STATUS_CANCELLED
                row.updated_at = int(self.clock.now_utc_ts())
                logger.info("reminder cancelled id=%s", row.id)
            db.flush()
            return _to_record(row)

    def snooze(self, reminder_id: int, minutes: int = 15) -> ReminderRecord:
        """active のリマインダーを「今から minutes 分後」に延期する。"""

        if isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 1:
            raise ValidationError("snooze minutes must be a positive integer")

        now_ts = int(self.clock.now_utc_ts())
        with session_scope() as db:
            row = db.get(Reminder, int(reminder_id))
            if row is None:
                raise NotFoundError(f"reminder not found: id={reminder_id}")
            if row.status != STATUS_ACTIVE:
                raise ValidationError(f"only active reminders can be snoozed (status={row.status})")
            row.reminder_date = now_ts + int(minutes) * 60
            row.updated_at = now_ts
            db.flush()
            record = _to_record(row)

        logger.info("reminder snoozed id=%s minutes=%s", record.id, minutes)
        return record

    def cancel_for_entity(self, entity_type: str, entity_id: int) -> int:
        """1エンティティに紐づく active リマインダーをすべてキャンセルし、件数を返す。"""

        with session_scope() as db:
            count = (
                db.query(Reminder)
                .filter(
                    Reminder.entity_type == str(entity_type),
                    Reminder.entity_id == int(entity_id),
                    Reminder.status == STATUS_ACTIVE,
                )
                .update(
                    {Reminder.status: STATUS_CANCELLED, Reminder.updated_at: int(self.clock.now_utc_ts())},
                    synchronize_session=False,
                )
            )
        if count:
            logger.info("reminders cancelled for entity=%s:%s count=%s", entity_type, entity_id, count)
        return int(count or 0)

    # --- スケジューラからの遷移（active のときだけ書く） ---

    def mark_sent(self, reminder_id: int, now_ts: int) -> bool:
        """one-time を sent にする。"""

        return self._update_if_active(
            reminder_id,
            {Reminder.status: STATUS_SENT, Reminder.sent_at: int(now_ts), Reminder.updated_at: int(now_ts)},
        )

    def reschedule(self, reminder_id: int, next_ts: int, now_ts: int) -> bool:
        """recurring の次回発火時刻を更新する（状態は active のまま）。"""

        return self._update_if_active(
            reminder_id,
            {Reminder.reminder_date: int(next_ts), Reminder.sent_at: int(now_ts), Reminder.updated_at: int(now_ts)},
        )

    def mark_cancelled_if_active(self, reminder_id: int, now_ts: int) -> bool:
        """エンティティ消失 / 繰り返し終了で cancelled にする。"""

        return self._update_if_active(
            reminder_id,
            {Reminder.status: STATUS_CANCELLED, Reminder.updated_at: int(now_ts)},
        )

    def _update_if_active(self, reminder_id: int, values: dict[Any, Any]) -> bool:
        with session_scope() as db:
            count = (
                db.query(Reminder)
                .filter(Reminder.id == int(reminder_id), Reminder.status == STATUS_ACTIVE)
                .update(values, synchronize_session=False)
            )
        if not count:
            logger.info("reminder no longer active; status write skipped id=%s", reminder_id)
        return bool(count)

    # --- 保持期間 ---

    def purge_terminal_before(self, cutoff_ts: int) -> int:
        """終端状態（sent/cancelled）で updated_at < cutoff の行を削除し、件数を返す。"""

        with session_scope() as db:
            count = (
                db.query(Reminder)
                .filter(Reminder.status.in_(TERMINAL_STATUSES), Reminder.updated_at < int(cutoff_ts))
                .delete(synchronize_session=False)
            )
        return int(count or 0)
