import asyncio
import logging
from collections.abc import Callable, Iterable
from pathlib import Path

from watchfiles import Change, DefaultFilter, awatch

from .config import WatcherConfig
from .constants import APP_NAME, DEFAULT_IGNORES

logger = logging.getLogger(APP_NAME)


class SaveWatchFilter(DefaultFilter):
    """Drops deletions, hidden paths and temp files before they reach the gate."""

    def __init__(self, root: Path, extra_patterns: Iterable[str] = ()):
        super().__init__(
            ignore_entity_patterns=(
                *DefaultFilter.ignore_entity_patterns,
                *DEFAULT_IGNORES,
                *extra_patterns,
            )
        )
        self.root = root

    def __call__(self, change: Change, path: str) -> bool:
        if change == Change.deleted:
            return False
        try:
            rel_parts = Path(path).relative_to(self.root).parts
        except ValueError:
            return False
        if any(part.startswith(".") for part in rel_parts):
            return False
        return super().__call__(change, path)


class SaveWatcher:
    """Polls the watch root and forwards added or modified files to a callback.

    Attributes:
        root (Path): The directory being watched (recursively).
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[str], object],
        config: WatcherConfig,
        ignore: Iterable[str] = (),
    ):
        self.root = root
        self.config = config
        self.watch_filter = SaveWatchFilter(root, ignore)
        self._on_change = on_change
        self._stop = asyncio.Event()

    def stop(self) -> None:
        """Ends the watch loop; events still in the watcher's buffer are discarded."""
        self._stop.set()

    async def run(self) -> None:
        """Watches until `stop` is called."""
        logger.info(f"Initializing file watcher for {self.root}")
        async for changes in awatch(
            self.root,
            watch_filter=self.watch_filter,
            stop_event=self._stop,
            force_polling=True,
            poll_delay_ms=int(self.config.poll_interval * 1000),
            debounce=int(self.config.stability_threshold * 1000),
            step=int(self.config.stability_poll * 1000),
            ignore_permission_denied=True,
        ):
            if self._stop.is_set():
                break
            for _, path in sorted(changes):
                self._on_change(path)
