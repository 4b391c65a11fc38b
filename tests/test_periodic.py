"""
Periodic job runner tests.
"""

import asyncio
import logging
import threading
import unittest
from types import SimpleNamespace

from habitline.runtime.periodic import start_periodic_task, stop_periodic_tasks

logger = logging.getLogger("tests.periodic")


def _app():
    return SimpleNamespace(state=SimpleNamespace())


class TestPeriodicTask(unittest.TestCase):

    def test_job_survives_failures_until_stopped(self):
        app = _app()
        calls = []

        def flaky():
            calls.append(len(calls))
            if len(calls) == 1:
                raise RuntimeError("first run fails")

        async def scenario():
            task = start_periodic_task(
                app, name="flaky", interval_seconds=0.01, wait_first=False, func=flaky, logger=logger
            )
            for _ in range(300):
                if len(calls) >= 3:
                    break
                await asyncio.sleep(0.01)
            await stop_periodic_tasks(app, logger=logger)
            return task

        with self.assertLogs("tests.periodic", level="ERROR"):
            task = asyncio.run(scenario())
        self.assertGreaterEqual(len(calls), 3)
        self.assertTrue(task.done())
        self.assertEqual(app.state._habitline_periodic_jobs, [])

    def test_job_runs_off_the_event_loop_thread(self):
        app = _app()
        seen = []

        def job():
            seen.append(threading.get_ident())

        async def scenario():
            loop_thread = threading.get_ident()
            start_periodic_task(app, name="job", interval_seconds=0.01, wait_first=False, func=job, logger=logger)
            for _ in range(300):
                if seen:
                    break
                await asyncio.sleep(0.01)
            await stop_periodic_tasks(app, logger=logger)
            return loop_thread

        loop_thread = asyncio.run(scenario())
        self.assertTrue(seen)
        self.assertNotEqual(seen[0], loop_thread)

    def test_wait_first_delays_first_run(self):
        app = _app()
        calls = []

        async def scenario():
            start_periodic_task(
                app, name="late", interval_seconds=60, wait_first=True, func=lambda: calls.append(1), logger=logger
            )
            await asyncio.sleep(0.05)
            await stop_periodic_tasks(app, logger=logger)

        asyncio.run(scenario())
        self.assertEqual(calls, [])

    def test_interval_must_be_positive(self):
        async def scenario():
            start_periodic_task(_app(), name="bad", interval_seconds=0, wait_first=True, func=lambda: None, logger=logger)

        with self.assertRaises(ValueError):
            asyncio.run(scenario())

    def test_stop_without_jobs_is_noop(self):
        asyncio.run(stop_periodic_tasks(_app(), logger=logger))


if __name__ == "__main__":
    unittest.main()
