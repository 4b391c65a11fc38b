"""
起動時の設定・DB初期化。

目的:
    - create_app() から初期化の詳細を切り離す。
    - 設定 -> ログ -> DB -> 設定ストア登録 の順序を1箇所で固定する。
"""

from __future__ import annotations

import pathlib

from habitline.config import Config, ConfigStore, load_config, set_global_config_store
from habitline.runtime.logging import setup_logging
from habitline.storage.db import get_db_url, init_db


def bootstrap_config(
    config: Config | None = None,
    *,
    config_path: str | pathlib.Path | None = None,
) -> Config:
    """
    起動時の初期化を実行し、確定した Config を返す。

    config を渡した場合はファイルを読まずにそれを使う（テスト / 組み込み用）。
    """

    # --- 1. TOML 設定を読み込み、ログ設定を先に確定する ---
    cfg = config if config is not None else load_config(config_path)
    setup_logging(
        cfg.log_level,
        log_file_enabled=cfg.log_file_enabled,
        log_file_path=cfg.log_file_path,
        log_file_max_bytes=cfg.log_file_max_bytes,
    )

    # --- 2. DB を初期化する ---
    init_db(get_db_url(cfg.db_path))

    # --- 3. グローバル設定ストアへ登録する ---
    set_global_config_store(ConfigStore(cfg))
    return cfg
