"""
繰り返しリマインダーの次回発火時刻計算。

方針:
    - 純粋関数だけを置く（DB / 時計に触らない）。
    - 時刻は UTC の UNIX 秒で受け渡し、暦計算は UTC の datetime で行う。

月次の繰り上がり規則:
    - 「interval ヶ月後の同じ日」が存在しない場合は、その月の末日に丸める（clamp）。
      例: 1/31 + 1ヶ月 -> 2/28（閏年は 2/29）。
    - 丸めた日は次回の基準日になる（2/28 の次は 3/28）。元の日付へは戻さない。
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from habitline.core.time_utils import parse_iso8601_to_utc_ts
from habitline.reminders.errors import ValidationError


FREQUENCIES = ("daily", "weekly", "monthly", "custom")


@dataclass(frozen=True)
class RecurrenceRule:
    """繰り返し規則。days_of_week は 0=日曜..6=土曜。"""

    frequency: str
    interval: int = 1
    days_of_week: tuple[int, ...] = ()
    end_date: Optional[int] = None

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "RecurrenceRule":
        """
        API 入力（dict）から規則を作る。

        frequency 欠落 / 未知、interval が正の整数でない、曜日が 0..6 外の場合は ValidationError。
        """

        payload = dict(data or {})
        frequency = str(payload.get("frequency") or "").strip().lower()
        if frequency not in FREQUENCIES:
            raise ValidationError(f"recurrence.frequency must be one of {', '.join(FREQUENCIES)}")

        interval_raw = payload.get("interval", 1)
        if interval_raw is None:
            interval_raw = 1
        if isinstance(interval_raw, bool) or not isinstance(interval_raw, int) or interval_raw < 1:
            raise ValidationError("recurrence.interval must be a positive integer")

        days_raw = payload.get("days_of_week", payload.get("daysOfWeek")) or []
        if not isinstance(days_raw, (list, tuple, set)):
            raise ValidationError("recurrence.days_of_week must be a list of integers")
        days: set[int] = set()
        for d in days_raw:
            if isinstance(d, bool) or not isinstance(d, int) or not 0 <= d <= 6:
                raise ValidationError("recurrence.days_of_week items must be integers in 0..6")
            days.add(int(d))

        end_date = payload.get("end_date", payload.get("endDate"))
        if isinstance(end_date, str):
            end_date = parse_iso8601_to_utc_ts(end_date)
            if end_date is None:
                raise ValidationError("recurrence.end_date must be an ISO 8601 datetime")
        if end_date is not None and (isinstance(end_date, bool) or not isinstance(end_date, int)):
            raise ValidationError("recurrence.end_date must be a UNIX timestamp")

        return cls(
            frequency=frequency,
            interval=int(interval_raw),
            days_of_week=tuple(sorted(days)),
            end_date=(int(end_date) if end_date is not None else None),
        )

    def to_dict(self) -> dict[str, Any]:
        """API 応答向けの dict を返す。"""

        return {
            "frequency": self.frequency,
            "interval": int(self.interval),
            "days_of_week": list(self.days_of_week),
            "end_date": self.end_date,
        }


def _add_months_clamped(dt: datetime, months: int) -> datetime:
    """暦の月を加算し、存在しない日は月末に丸める。"""

    month_index = (dt.month - 1) + int(months)
    year = dt.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return dt.replace(year=year, month=month, day=min(dt.day, last_day))


def _sunday_based_weekday(dt: datetime) -> int:
    # datetime.weekday() は 0=月曜。days_of_week は 0=日曜。
    return (dt.weekday() + 1) % 7


def next_fire_date(current_ts: int, rule: RecurrenceRule | None) -> int | None:
    """
    次回発火時刻（UTC UNIX 秒）を返す。

    - daily: interval 日後
    - weekly: interval * 7 日後
    - monthly: interval ヶ月後（月末に clamp）
    - custom: current より後で、曜日が days_of_week に含まれる最初の日（時刻は維持）
    - 規則なし / 未知の frequency / interval<1 / custom で曜日なし: None

    end_date による打ち切りは呼び出し側で is_within_end_date() を使って判定する。
    """

    if rule is None:
        return None
    interval = int(rule.interval or 0)
    if interval < 1:
        return None

    current = datetime.fromtimestamp(int(current_ts), tz=timezone.utc)
    frequency = str(rule.frequency or "").lower()

    if frequency == "daily":
        nxt = current + timedelta(days=interval)
    elif frequency == "weekly":
        nxt = current + timedelta(days=interval * 7)
    elif frequency == "monthly":
        nxt = _add_months_clamped(current, interval)
    elif frequency == "custom":
        days = {int(d) for d in rule.days_of_week if 0 <= int(d) <= 6}
        if not days:
            return None
        nxt = None
        for offset in range(1, 8):
            candidate = current + timedelta(days=offset)
            if _sunday_based_weekday(candidate) in days:
                nxt = candidate
                break
        if nxt is None:  # pragma: no cover
            return None
    else:
        return None

    return int(nxt.timestamp())


def is_within_end_date(next_ts: int, rule: RecurrenceRule | None) -> bool:
    """end_date が設定されていて next_ts がそれを超える場合だけ False。"""

    if rule is None or rule.end_date is None:
        return True
    return int(next_ts) <= int(rule.end_date)


def next_fire_after(anchor_ts: int, rule: RecurrenceRule | None, after_ts: int) -> int | None:
    """
    anchor_ts から規則どおりに進め、after_ts より後になった最初の発火時刻を返す。

    期限を過ぎて処理された繰り返しリマインダーは、取りこぼした回をまとめて飛ばす
    （過去の回を1回ずつ再送しない）。時刻（時:分）は anchor_ts のものを保つ。
    進められない規則なら None。
    """

    current = int(anchor_ts)
    while True:
        nxt = next_fire_date(current, rule)
        if nxt is None:
            return None
        if nxt > int(after_ts):
            return nxt
        current = nxt
