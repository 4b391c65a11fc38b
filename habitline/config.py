"""
設定読み込みと設定ストア

TOML設定ファイルを読み込み、起動中に参照する設定として保持する。
設定は起動時に1回だけ読み込まれ、ConfigStore 経由で各モジュールから参照される。
"""

from __future__ import annotations

import os
import pathlib
import threading
from dataclasses import dataclass
from typing import Any

import tomli


# 設定ファイルパスを上書きする環境変数
CONFIG_PATH_ENV = "HABITLINE_CONFIG"
DEFAULT_CONFIG_PATH = pathlib.Path("config") / "setting.toml"


@dataclass
class Config:
    """
    TOML起動設定（起動時のみ使用、変更不可）。
    """

    port: int  # API の待受ポート
    token: str  # API / WebSocket 認証用トークン
    db_path: str  # SQLite ファイルのパス
    log_level: str  # ログレベル（DEBUG, INFO, WARNING, ERROR）
    log_file_enabled: bool  # ファイルログ有効/無効
    log_file_path: str  # ファイルログの保存先パス
    log_file_max_bytes: int  # ファイルログのローテーションサイズ（bytes）
    reminder_tick_seconds: int  # 期限到来リマインダーの確認間隔（秒）
    retention_sweep_seconds: int  # 保持期間の掃除の間隔（秒）
    retention_days: int  # 終端リマインダー / 配信済み通知を残す日数
    delivery_send_timeout_seconds: float  # WebSocket 1フレームの送信タイムアウト（秒）


class ConfigStore:
    """
    設定ストア。
    各モジュールからはこのストア経由で設定を参照する。
    """

    def __init__(self, config: Config) -> None:
        self._config = config
        self._lock = threading.Lock()

    @property
    def config(self) -> Config:
        """現在の Config を返す。"""
        with self._lock:
            return self._config


def _require(config_dict: dict, key: str) -> Any:
    """
    設定辞書から必須キーを取得する。
    キーが存在しないか空の場合はValueErrorを発生させる。
    """
    if key not in config_dict or config_dict[key] in (None, ""):
        raise ValueError(f"config key '{key}' is required")
    return config_dict[key]


def get_default_config_path() -> pathlib.Path:
    """既定の設定ファイルパス（環境変数 > config/setting.toml）を返す。"""

    env_path = str(os.environ.get(CONFIG_PATH_ENV) or "").strip()
    return pathlib.Path(env_path) if env_path else DEFAULT_CONFIG_PATH


def load_config(path: str | pathlib.Path | None = None) -> Config:
    """
    TOML設定ファイルを読み込む。
    許可されていないキーが含まれる場合はエラーを発生させる。
    """
    config_path = pathlib.Path(get_default_config_path() if path is None else path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    with config_path.open("rb") as f:
        data = tomli.load(f)

    allowed_keys = {
        "port",
        "token",
        "db_path",
        "log_level",
        "log_file_enabled",
        "log_file_path",
        "log_file_max_bytes",
        "reminder_tick_seconds",
        "retention_sweep_seconds",
        "retention_days",
        "delivery_send_timeout_seconds",
    }
    unknown_keys = sorted(set(data.keys()) - allowed_keys)
    if unknown_keys:
        keys = ", ".join(repr(k) for k in unknown_keys)
        raise ValueError(f"unknown config key(s): {keys} (allowed: {sorted(allowed_keys)})")

    # --- 間隔・日数は正の値だけ受け付ける ---
    def require_positive_int(key: str, default: int) -> int:
        v = int(data.get(key, default))
        if v <= 0:
            raise ValueError(f"{key} must be a positive integer")
        return int(v)

    send_timeout = float(data.get("delivery_send_timeout_seconds", 2.0))
    if send_timeout <= 0:
        raise ValueError("delivery_send_timeout_seconds must be positive")

    return Config(
        port=int(data.get("port", 55601)),
        token=str(_require(data, "token")),
        db_path=str(data.get("db_path", "data/habitline.db")),
        log_level=str(data.get("log_level", "INFO")),
        log_file_enabled=bool(data.get("log_file_enabled", False)),
        log_file_path=str(data.get("log_file_path", "logs/habitline.log")),
        log_file_max_bytes=require_positive_int("log_file_max_bytes", 200_000),
        reminder_tick_seconds=require_positive_int("reminder_tick_seconds", 60),
        retention_sweep_seconds=require_positive_int("retention_sweep_seconds", 86400),
        retention_days=require_positive_int("retention_days", 30),
        delivery_send_timeout_seconds=send_timeout,
    )


# グローバル設定ストア（シングルトン）
_config_store: ConfigStore | None = None


def set_global_config_store(store: ConfigStore | None) -> None:
    """グローバルConfigStoreを設定。起動時に一度だけ呼び出される。"""
    global _config_store
    _config_store = store


def get_config_store() -> ConfigStore:
    """
    グローバルConfigStoreを取得。
    初期化されていない場合はRuntimeErrorを発生させる。
    """
    if _config_store is None:
        raise RuntimeError("ConfigStore not initialized")
    return _config_store


def get_token() -> str:
    """API認証用トークンを返す。"""
    return get_config_store().config.token
