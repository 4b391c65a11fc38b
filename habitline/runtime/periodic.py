"""
定期ジョブの実行（FastAPI の startup で開始し、shutdown で止める）

ジョブは同期関数で受け取り、asyncio.to_thread で別スレッド実行する。
DB を触る処理でもイベントループ（WebSocket 配信）を止めない。

方針:
- 1回分が終わってから次の待機に入る（同じジョブ同士は重ならない）。
- ジョブの例外はログに残してループを続ける。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from fastapi import FastAPI


_JOBS_STATE_KEY = "_habitline_periodic_jobs"


def _jobs(app: "FastAPI") -> list[asyncio.Task[None]]:
    jobs = getattr(app.state, _JOBS_STATE_KEY, None)
    if jobs is None:
        jobs = []
        setattr(app.state, _JOBS_STATE_KEY, jobs)
    return jobs


def start_periodic_task(
    app: "FastAPI",
    *,
    name: str,
    interval_seconds: float,
    wait_first: bool,
    func: Callable[[], Any],
    logger: logging.Logger,
) -> asyncio.Task[None]:
    """
    interval_seconds ごとに func をワーカースレッドで呼ぶタスクを開始する。

    Args:
        app: タスクを登録する FastAPI アプリ（app.state に保持する）。
        name: タスク名。ログにも出す。
        interval_seconds: 実行間隔（秒、正の値）。
        wait_first: True なら初回も interval だけ待ってから実行する。
        func: 1回分の処理（同期関数）。戻り値は DEBUG ログに出すだけ。
        logger: 開始/失敗のログを書くロガー。
    """
    interval = float(interval_seconds)
    if interval <= 0:
        raise ValueError("interval_seconds must be > 0")

    async def _loop() -> None:
        if wait_first:
            await asyncio.sleep(interval)
        while True:
            try:
                result = await asyncio.to_thread(func)
                logger.debug("periodic job finished name=%s result=%s", name, result)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                logger.exception("periodic job failed name=%s: %s", name, str(exc))
            await asyncio.sleep(interval)

    task = asyncio.create_task(_loop(), name=str(name))
    _jobs(app).append(task)
    logger.info("periodic job started name=%s interval_seconds=%s", name, interval)
    return task


async def stop_periodic_tasks(app: "FastAPI", *, logger: logging.Logger) -> None:
    """
    登録済みのタスクをすべて cancel し、終わるまで待つ。

    スレッド側で実行中の1回分は中断されず、最後まで走る（結果は捨てる）。
    """
    jobs = list(getattr(app.state, _JOBS_STATE_KEY, None) or [])
    if not jobs:
        return

    for job in jobs:
        job.cancel()
    try:
        await asyncio.gather(*jobs, return_exceptions=True)
    finally:
        setattr(app.state, _JOBS_STATE_KEY, [])
        logger.info("periodic jobs stopped count=%s", len(jobs))
