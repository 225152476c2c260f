"""
giftstrack/services/request_guard.py

Purpose: Discard stale async results

- MountGuard: drops results that resolve after the owner tore down
- CancelableRequest: one slot, last-started operation wins
- Debouncer: only the most recent call within the delay fires
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, Set, TypeVar

from giftstrack.core.config import settings
from giftstrack.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class MountGuard:
    """
    "Still active" flag for a consumer.

    True from creation until teardown(). Owners check it after every
    suspension point before mutating state.
    """

    def __init__(self) -> None:
        self._active = True

    @property
    def is_active(self) -> bool:
        return self._active

    def teardown(self) -> None:
        self._active = False

    async def run(self, awaitable: Awaitable[T]) -> Optional[T]:
        """
        Awaits `awaitable` and returns its result only if still active.
        """
        result = await awaitable
        if not self._active:
            logger.debug("Result dropped after teardown")
            return None
        return result


class CancelableRequest:
    """
    Single-slot request runner for superseding operations (e.g. search).

    Starting a new operation cancels the pending one. Superseded or canceled
    operations resolve to None, so the last-started operation determines the
    final state regardless of resolution order.
    """

    def __init__(self) -> None:
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._canceled = False
        self._torn_down = False

    @property
    def generation(self) -> int:
        return self._generation

    def is_canceled(self) -> bool:
        return self._canceled

    async def execute(self, request_fn: Callable[[], Awaitable[T]]) -> Optional[T]:
        """
        Runs `request_fn` in this slot.

        Returns:
            The result, or None when superseded, canceled or torn down
        """
        if self._torn_down:
            return None

        self._cancel_task()
        self._generation += 1
        generation = self._generation
        self._canceled = False

        task = asyncio.ensure_future(request_fn())
        self._task = task
        try:
            result = await task
        except (asyncio.CancelledError, Exception):
            if self._is_stale(generation):
                logger.debug("Request superseded", extra={"request_id": generation})
                return None
            raise
        finally:
            if self._task is task:
                self._task = None

        if self._is_stale(generation):
            logger.debug("Stale result dropped", extra={"request_id": generation})
            return None
        return result

    def _is_stale(self, generation: int) -> bool:
        return generation != self._generation or self._canceled or self._torn_down

    def cancel(self) -> None:
        """Cancels the pending operation, if any."""
        self._canceled = True
        self._cancel_task()

    def teardown(self) -> None:
        self._torn_down = True
        self.cancel()

    def _cancel_task(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class Debouncer:
    """
    Delays `callback` until calls pause for `delay` seconds.

    Each call cancels the pending timer before arming a new one, so only the
    most recent arguments are ever delivered. Coroutine callbacks run as tasks
    owned by the debouncer.
    """

    def __init__(self, callback: Callable[..., Any], delay: Optional[float] = None):
        self._callback = callback
        self._delay = settings.SEARCH_DEBOUNCE_MS / 1000 if delay is None else delay
        self._handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def is_pending(self) -> bool:
        return self._handle is not None

    def call(self, *args: Any, **kwargs: Any) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._delay, self._fire, args, kwargs)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, args, kwargs) -> None:
        self._handle = None
        result = self._callback(*args, **kwargs)
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
