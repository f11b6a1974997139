import asyncio
import logging
from collections.abc import Callable, Iterable

from .constants import APP_NAME

logger = logging.getLogger(APP_NAME)


class ChangeAggregator:
    """A debounced, de-duplicating queue of pending save paths.

    Every `enqueue` restarts the quiet-period timer, so a continuous stream of
    writes postpones the flush until the folder actually settles. All methods
    must be called from the event loop thread.

    Attributes:
        delay (float): The quiet period in seconds.
    """

    def __init__(self, on_quiet: Callable[[], None], delay: float = 5.0):
        """Initializes the aggregator.

        Args:
            on_quiet (Callable[[], None]): Invoked once each time the timer elapses.
            delay (float, optional): Quiet period in seconds. Defaults to 5.0.
        """
        self.delay = delay
        self._on_quiet = on_quiet
        self._pending: set[str] = set()
        self._timer: asyncio.TimerHandle | None = None

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> frozenset[str]:
        """frozenset[str]: A read-only view of the queued paths."""
        return frozenset(self._pending)

    @property
    def armed(self) -> bool:
        """bool: Whether a flush timer is currently scheduled."""
        return self._timer is not None

    def enqueue(self, path: str) -> None:
        """Queues a path and restarts the quiet-period timer."""
        if path not in self._pending:
            logger.info(f"Queuing save file: {path}")
        self._pending.add(path)
        self._arm()

    def requeue(self, paths: Iterable[str]) -> None:
        """Returns paths from a failed attempt to the queue without arming the timer."""
        self._pending.update(paths)

    def drain(self) -> frozenset[str]:
        """Takes and clears the queued paths in one step."""
        batch = frozenset(self._pending)
        self._pending.clear()
        return batch

    def rearm(self) -> None:
        """Schedules a flush for leftover paths if none is scheduled yet."""
        if self._pending and self._timer is None:
            self._arm()

    def cancel(self) -> None:
        """Disarms the flush timer, keeping the queued paths."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _arm(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire)

    def _fire(self) -> None:
        self._timer = None
        logger.info("Debounce period ended, processing queued files...")
        self._on_quiet()
