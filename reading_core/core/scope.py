"""
View scope: liveness token plus the cancellable timers a reader view owns.

Every deferred callback (corrective scroll-back, deferred paywall, restore of
saved progress, autosave) is registered here and cancelled synchronously when
the owning view closes.
"""

import asyncio
import inspect
import logging
import uuid
from typing import Any, Callable, Optional, Set

logger = logging.getLogger(__name__)


class ViewScope:
    def __init__(self, name: str = "view", loop: Optional[asyncio.AbstractEventLoop] = None):
        self.id = f"{name}-{uuid.uuid4().hex[:8]}"
        self._loop = loop
        self._alive = True
        self._handles: Set[asyncio.Handle] = set()
        self._tasks: Set[asyncio.Task] = set()

    @property
    def alive(self) -> bool:
        return self._alive

    @property
    def pending(self) -> int:
        return len(self._handles) + len(self._tasks)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def _run(self, callback: Callable[..., Any], args: tuple) -> None:
        if not self._alive:
            return
        try:
            result = callback(*args)
        except Exception:
            logger.exception("Scoped callback failed", extra={"scope": self.id})
            return
        if inspect.isawaitable(result):
            self.spawn(result)

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> Optional[asyncio.TimerHandle]:
        """Schedule callback after delay seconds; coroutine results run as scoped tasks."""
        if not self._alive:
            return None

        handle: Optional[asyncio.TimerHandle] = None

        def fire():
            self._handles.discard(handle)
            self._run(callback, args)

        handle = self._get_loop().call_later(max(0.0, delay), fire)
        self._handles.add(handle)
        return handle

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Optional[asyncio.Handle]:
        """Defer callback to the next loop tick."""
        if not self._alive:
            return None

        handle: Optional[asyncio.Handle] = None

        def fire():
            self._handles.discard(handle)
            self._run(callback, args)

        handle = self._get_loop().call_soon(fire)
        self._handles.add(handle)
        return handle

    def spawn(self, coro) -> Optional[asyncio.Task]:
        if not self._alive:
            coro.close()
            return None
        task = self._get_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(
                "Scoped task failed: %s",
                task.exception(),
                extra={"scope": self.id},
            )

    def cancel(self, handle: Optional[asyncio.Handle]) -> None:
        if handle is None:
            return
        handle.cancel()
        self._handles.discard(handle)

    def close(self) -> None:
        """Mark the scope dead and cancel every pending timer and task."""
        if not self._alive:
            return
        self._alive = False
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()
        logger.debug("Scope closed", extra={"scope": self.id})
