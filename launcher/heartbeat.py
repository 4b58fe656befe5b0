"""
Heartbeat - runs the agent's periodic tasks on their own cadences.

One loop ticks every few seconds and starts each task whose interval has
elapsed. A task whose previous run is still going is skipped for that tick
rather than run twice in parallel. Task failures are logged; the loop never
dies because one task raised.
"""

import time
import asyncio
import logging
from typing import Awaitable, Callable, Optional

logger = logging.getLogger("launcher.heartbeat")

TICK_SECONDS = 5.0

TaskFn = Callable[[], Awaitable[None]]


class Heartbeat:

    def __init__(self, tasks: dict[str, tuple[TaskFn, float]], tick_seconds: float = TICK_SECONDS,
                 clock: Callable[[], float] = time.time, run_immediately: bool = False):
        self.tasks = tasks
        self.tick_seconds = tick_seconds
        self._clock = clock
        first = 0.0 if run_immediately else clock()
        self._last_run: dict[str, float] = {name: first for name in tasks}
        self._running: dict[str, asyncio.Task] = {}
        self._loop_task: Optional[asyncio.Task] = None

    def due(self, now: float) -> list[str]:
        return [
            name for name, (_, interval) in self.tasks.items()
            if interval > 0 and now - self._last_run[name] >= interval
        ]

    async def _run(self, name: str, fn: TaskFn):
        started = self._clock()
        try:
            await fn()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Heartbeat: {name} failed: {e}", exc_info=True)
        finally:
            self._running.pop(name, None)
            elapsed = self._clock() - started
            if elapsed > self.tick_seconds:
                logger.debug(f"Heartbeat: {name} took {elapsed:.1f}s")

    def tick(self) -> list[str]:
        """Start every due task that is not already running. Returns the names started."""
        now = self._clock()
        started = []
        for name in self.due(now):
            if name in self._running:
                logger.warning(f"Heartbeat: {name} still running - skipping this tick")
                continue
            self._last_run[name] = now
            fn, _ = self.tasks[name]
            self._running[name] = asyncio.create_task(self._run(name, fn))
            started.append(name)
        return started

    async def _loop(self):
        while True:
            self.tick()
            await asyncio.sleep(self.tick_seconds)

    def start(self) -> asyncio.Task:
        if self._loop_task is None or self._loop_task.done():
            self._loop_task = asyncio.create_task(self._loop())
            logger.info(
                "Heartbeat started: "
                + ", ".join(f"{name} every {int(interval)}s" for name, (_, interval) in self.tasks.items())
            )
        return self._loop_task

    async def stop(self):
        tasks = list(self._running.values())
        if self._loop_task is not None:
            tasks.append(self._loop_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._running.clear()
        self._loop_task = None
