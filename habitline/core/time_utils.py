"""
時刻ユーティリティ

DB に保存している UNIX 秒（UTC）と、API / WebSocket で受け渡す ISO 8601 文字列を相互変換する。

注意:
- DB自体の保存形式（UNIX秒）は変更しない（検索・ソートが簡単なため）。
- タイムゾーン無しの入力は UTC とみなす（サーバはユーザーのタイムゾーンを持たない）。
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def format_iso8601_utc(ts_utc: Optional[int]) -> Optional[str]:
    """UTCのUNIX秒を、ISO 8601形式のUTC時刻（Z付き）へ変換して返す。

    例:
    - 1700000000 -> "2023-11-14T22:13:20Z"

    Args:
        ts_utc: UTCのUNIX秒（int）。None は None を返す。

    Returns:
        ISO 8601形式のUTC時刻（秒精度）。無効値ならNone。
    """

    if ts_utc is None:
        return None
    try:
        ts_i = int(ts_utc)
    except (TypeError, ValueError):
        return None

    dt_utc = datetime.fromtimestamp(ts_i, tz=timezone.utc)
    return dt_utc.replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def parse_iso8601_to_utc_ts(text_in: Optional[str]) -> Optional[int]:
    """
    ISO 8601 形式の日時文字列を UTC のUNIX秒へ変換して返す。

    注意:
        - 末尾 "Z" を受け付ける。
        - タイムゾーン情報が無い場合は UTC とみなす。
        - 不正な文字列は None を返す。
    """
    s = str(text_in or "").strip()
    if not s:
        return None
    if s.endswith("Z") or s.endswith("z"):
        s = s[:-1] + "+00:00"

    try:
        dt = datetime.fromisoformat(s)
    except ValueError:
        return None

    # --- タイムゾーン無しは UTC として扱う ---
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return int(dt.astimezone(timezone.utc).timestamp())
