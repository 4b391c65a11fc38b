"""
ログ設定。

目的:
    - ルートロガーへコンソール / ファイル（ローテーション）出力を1回だけ取り付ける。
    - uvicorn の access log から、頻繁でノイズになるパスを除外する。
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path


_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s - %(message)s"
_LOG_BACKUP_COUNT = 3
_HANDLER_MARK = "_habitline_handler"


def _resolve_level(level: str) -> int:
    """"INFO" などの文字列をログレベル値へ変換する（不明なら INFO）。"""

    value = getattr(logging, str(level or "INFO").strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(
    level: str,
    *,
    log_file_enabled: bool = False,
    log_file_path: str = "logs/habitline.log",
    log_file_max_bytes: int = 5 * 1024 * 1024,
) -> None:
    """
    ルートロガーを初期化する。

    再呼び出し時は、以前取り付けたハンドラを外してから付け直す。
    """

    root = logging.getLogger()
    root.setLevel(_resolve_level(level))

    # --- 以前このモジュールが付けたハンドラを外す ---
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_MARK, False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(_LOG_FORMAT)

    console = logging.StreamHandler()
    console.setFormatter(formatter)
    setattr(console, _HANDLER_MARK, True)
    root.addHandler(console)

    if log_file_enabled:
        path = Path(log_file_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(path),
            maxBytes=int(log_file_max_bytes),
            backupCount=_LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        setattr(file_handler, _HANDLER_MARK, True)
        root.addHandler(file_handler)


class _PathExcludeFilter(logging.Filter):
    """uvicorn.access のレコードから、指定パスへのリクエストを落とす。"""

    def __init__(self, paths: tuple[str, ...]) -> None:
        super().__init__()
        self.paths = paths

    def filter(self, record: logging.LogRecord) -> bool:
        # NOTE: uvicorn.access の args は (client, method, path, http_version, status)
        args = record.args
        if isinstance(args, tuple) and len(args) >= 3:
            path = str(args[2]).split("?", 1)[0]
            if path in self.paths:
                return False
        return True


def suppress_uvicorn_access_log_paths(*paths: str) -> None:
    """uvicorn の access log から指定パスを除外する。"""

    targets = tuple(str(p) for p in paths if str(p or "").strip())
    if not targets:
        return
    logging.getLogger("uvicorn.access").addFilter(_PathExcludeFilter(targets))
