"""
Habitline DB（habitline.db）接続とセッション管理

リマインダー / オフライン通知 / エンティティ（タスク・習慣など）を1つの SQLite に置く。
時刻列はすべて UTC の UNIX 秒（int）で保存する（検索・ソートが簡単なため）。
"""

from __future__ import annotations

import contextlib
import logging
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker


logger = logging.getLogger(__name__)

# habitline.db 用 Base
Base = declarative_base()

# グローバルセッション
SessionLocal: sessionmaker | None = None
_engine: Engine | None = None


def get_db_url(db_path: str | Path) -> str:
    """DB ファイルパスから SQLAlchemy URL を返す。"""

    return f"sqlite:///{Path(db_path).resolve()}"


def init_db(db_url: str) -> None:
    """
    habitline.db を初期化する（起動時）。

    - セッションファクトリを作成する
    - テーブルを作成する

    多重呼び出しされた場合は、前のエンジンを破棄して作り直す（テスト用途）。
    """

    global SessionLocal, _engine

    # --- 既存エンジンは閉じる ---
    dispose_db()

    # --- 保存先ディレクトリを用意する ---
    if db_url.startswith("sqlite:///"):
        Path(db_url[len("sqlite:///"):]).parent.mkdir(parents=True, exist_ok=True)

    connect_args = {"check_same_thread": False, "timeout": 10.0}
    engine = create_engine(db_url, future=True, connect_args=connect_args)

    @event.listens_for(engine, "connect")
    def _apply_sqlite_pragmas(dbapi_conn, connection_record):
        """接続ごとに必要な PRAGMA を適用する。"""
        dbapi_conn.execute("PRAGMA foreign_keys=ON")
        dbapi_conn.execute("PRAGMA synchronous=NORMAL")

    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True, expire_on_commit=False)
    _engine = engine

    # --- テーブル群を作成（モデル import が必要） ---
    import habitline.entities.models  # noqa: F401
    import habitline.reminders.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    logger.info("habitline DB initialized: %s", db_url)


def dispose_db() -> None:
    """エンジンを破棄してセッションファクトリを外す。"""

    global SessionLocal, _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None
    SessionLocal = None


@contextlib.contextmanager
def session_scope() -> Iterator[Session]:
    """
    DB のセッションスコープ（with文用）。

    正常終了時はコミット、例外時はロールバックする。
    """

    if SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
