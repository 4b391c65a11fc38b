"""Habitline 起動スクリプト。

開発時の手動起動を想定する。
"""

from __future__ import annotations


def main() -> None:
    """uvicorn で FastAPI アプリを起動する。"""

    import uvicorn

    # --- setting.toml から待受ポートを取得する ---
    from habitline.config import load_config

    toml_config = load_config()

    # --- create_app はファクトリとして渡す（reload 時に子プロセス側で組み立てる） ---
    uvicorn.run(
        "habitline.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=toml_config.port,
        reload=True,
    )


if __name__ == "__main__":
    main()
