"""
アプリ内時計。

リマインダーの「いま」は必ずここから読む。
オフセット秒を足せるので、発火や繰り返しを実時間待ちなしで確かめられる。
"""

from __future__ import annotations

import threading
import time


class ClockService:
    """OS時刻 + オフセット秒 を返す時計。"""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._offset_seconds = 0

    def _base_utc_ts(self) -> int:
        return int(time.time())

    def now_utc_ts(self) -> int:
        """現在時刻（UTC の UNIX 秒、オフセット込み）を返す。"""

        with self._lock:
            offset = self._offset_seconds
        return self._base_utc_ts() + offset

    def advance_seconds(self, *, seconds: int) -> int:
        """
        時計を seconds 秒だけ進め、変更後のオフセット秒を返す。

        巻き戻しはできない（0 以下は ValueError）。
        """

        delta = int(seconds)
        if delta <= 0:
            raise ValueError("seconds must be >= 1")
        with self._lock:
            self._offset_seconds += delta
            return self._offset_seconds

    def reset_offset(self) -> None:
        """オフセットを 0 に戻す。"""

        with self._lock:
            self._offset_seconds = 0


class FixedClock(ClockService):
    """固定時刻を基準にする時計（テスト / 再処理用）。"""

    def __init__(self, now_utc_ts: int) -> None:
        super().__init__()
        self._fixed = int(now_utc_ts)

    def _base_utc_ts(self) -> int:
        return self._fixed

    def set(self, now_utc_ts: int) -> None:
        """基準時刻を差し替え、オフセットも 0 に戻す。"""

        with self._lock:
            self._fixed = int(now_utc_ts)
            self._offset_seconds = 0


_clock_service = ClockService()


def get_clock_service() -> ClockService:
    """時計サービスのシングルトンを返す。"""

    return _clock_service
