import asyncio
import inspect
import logging
from functools import wraps
from typing import Any, Callable

logger = logging.getLogger(__name__)

DISPLAY_TIMER = "displayTimer"
HIDE_TIMER = "hideTimer"
POLL_TIMER = "pollTimer"


def log_exceptions(func):
    """Timer callbacks must never raise into the event loop: log and carry on."""

    if inspect.iscoroutinefunction(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s failed", func.__qualname__)
            return None

        return async_wrapper

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except Exception:
            logger.exception("%s failed", func.__qualname__)
        return None

    return wrapper


class TimerScheduler:
    """Named timers on the running loop; re-arming a name replaces its timer."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}
        self._repeating: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def arm(self, name: str, delay: float, callback: Callable[[], Any]) -> None:
        self.cancel(name)
        self._schedule(name, delay, callback)

    def _schedule(self, name: str, delay: float, callback: Callable[[], Any]) -> None:
        old = self._handles.pop(name, None)
        if old is not None:
            old.cancel()
        self._handles[name] = self.loop.call_later(max(0.0, delay), self._fire, name, callback)

    def arm_repeating(self, name: str, period: float, callback: Callable[[], Any]) -> None:
        async def tick() -> None:
            try:
                result = callback()
                if inspect.isawaitable(result):
                    await result
            finally:
                if name in self._repeating and name not in self._handles:
                    self._schedule(name, period, tick)

        self.cancel(name)
        self._repeating.add(name)
        self._schedule(name, period, tick)

    def _fire(self, name: str, callback: Callable[[], Any]) -> None:
        self._handles.pop(name, None)
        result = callback()
        if inspect.isawaitable(result):
            task = self.loop.create_task(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    def cancel(self, name: str) -> bool:
        self._repeating.discard(name)
        handle = self._handles.pop(name, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        self._repeating.clear()
        for name in list(self._handles):
            self.cancel(name)
        for task in list(self._tasks):
            if task is not asyncio.current_task():
                task.cancel()
        self._tasks.clear()

    def is_armed(self, name: str) -> bool:
        return name in self._handles

    def active(self) -> list[str]:
        return sorted(self._handles)
