import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine, Iterable
from typing import Any

from .constants import APP_NAME
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)


class RetryController:
    """Re-feeds failed batches into the queue with a fixed delay and a hard ceiling.

    The counter is shared by consecutive failures: it only returns to zero when
    a publish succeeds or when a batch is abandoned.

    Attributes:
        max_retries (int): Number of retries before a batch is dropped.
        delay (float): Seconds to wait before each retry.
        count (int): Retries spent since the last success or drop.
    """

    def __init__(
        self,
        requeue: Callable[[Iterable[str]], None],
        flush: Callable[[], Awaitable[bool]],
        max_retries: int = 3,
        delay: float = 2.0,
        system: SystemStrategy | None = None,
    ):
        self.max_retries = max_retries
        self.delay = delay
        self.count = 0
        self._requeue = requeue
        self._flush = flush
        self._system = system or get_system()
        self._tasks: set[asyncio.Task] = set()
        # Retries still sleeping, with the batch each one will put back.
        self._sleeping: dict[asyncio.Task, frozenset[str]] = {}

    @property
    def active(self) -> bool:
        """bool: Whether any retry or drop notification is still pending."""
        return bool(self._tasks)

    def reset(self) -> None:
        """Clears the counter after a successful publish."""
        self.count = 0

    def schedule_retry(self, batch: Iterable[str]) -> asyncio.Task | None:
        """Schedules another attempt for `batch`, or drops it past the ceiling.

        Args:
            batch (Iterable[str]): The paths of the failed attempt, before filtering.

        Returns:
            asyncio.Task | None: The scheduled retry, or None if the batch was dropped.
        """
        paths = frozenset(batch)
        if self.count >= self.max_retries:
            logger.error(
                f"Max retries exceeded. Dropping {len(paths)} file(s): "
                f"{', '.join(sorted(paths))}"
            )
            self._track(self._notify_dropped(len(paths)))
            self.count = 0
            return None

        self.count += 1
        logger.info(
            f"Retrying in {self.delay:g}s (attempt {self.count}/{self.max_retries})"
        )
        task = self._track(self._retry(paths))
        self._sleeping[task] = paths
        return task

    def cancel_all(self) -> None:
        """Cancels retries that are still waiting and puts their batches back."""
        for task, paths in list(self._sleeping.items()):
            task.cancel()
            self._requeue(paths)
        self._sleeping.clear()

    async def wait(self) -> None:
        """Waits for every scheduled retry, including retries they schedule."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _retry(self, paths: frozenset[str]) -> None:
        await asyncio.sleep(self.delay)
        self._sleeping.pop(asyncio.current_task(), None)
        self._requeue(paths)
        try:
            await self._flush()
        except Exception:
            logger.exception("Retry flush crashed")

    async def _notify_dropped(self, count: int) -> None:
        # notify() runs a subprocess; keep it off the event loop thread.
        await asyncio.to_thread(
            self._system.notify,
            "Save Sync Failed",
            f"Gave up on {count} file(s) after retries",
            urgent=True,
        )

    def _track(self, coro: Coroutine[Any, Any, None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._forget)
        return task

    def _forget(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        self._sleeping.pop(task, None)
