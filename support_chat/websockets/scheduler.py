import asyncio
import logging
from typing import Awaitable, Callable, Protocol, Set

logger = logging.getLogger(__name__)


class ScheduledTask(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> ScheduledTask: ...


class _TimerHandle:
    def __init__(self, scheduler: "AsyncioScheduler"):
        self._scheduler = scheduler
        self.timer = None
        self.task = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.timer is not None:
            self.timer.cancel()
        if self.task is not None and not self.task.done():
            self.task.cancel()


class AsyncioScheduler:
    """이벤트 루프의 call_later 위에서 비동기 콜백을 예약합니다."""

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callable[[], Awaitable[None]]) -> _TimerHandle:
        loop = asyncio.get_running_loop()
        handle = _TimerHandle(self)

        def _fire():
            if handle.cancelled:
                return
            task = loop.create_task(callback())
            handle.task = task
            self._tasks.add(task)
            task.add_done_callback(self._on_done)

        handle.timer = loop.call_later(delay, _fire)
        return handle

    def _on_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Scheduled callback failed: {exc}", exc_info=exc)
