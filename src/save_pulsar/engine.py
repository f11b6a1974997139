import asyncio
import logging
from pathlib import Path

from .aggregator import ChangeAggregator
from .config import Config
from .constants import APP_NAME
from .gate import StabilityGate
from .git_wrapper import GitRepo
from .publisher import PublishPipeline
from .system import SystemStrategy

logger = logging.getLogger(APP_NAME)


class SyncEngine:
    """Owns the gate, the queue and the publish pipeline for one watch root.

    Watch events go in through `handle_event`; everything else happens on
    timers and tasks scheduled on the running event loop.
    """

    def __init__(
        self, repo: GitRepo, config: Config, system: SystemStrategy | None = None
    ):
        self.config = config
        self.gate = StabilityGate(
            repo.path,
            container_pattern=config.files.container_pattern,
            extensions=config.files.extensions,
        )
        self.aggregator = ChangeAggregator(
            self._on_quiet, delay=config.sync.debounce_delay
        )
        self.pipeline = PublishPipeline(repo, self.aggregator, config, system=system)
        self._flushes: set[asyncio.Task] = set()

    def handle_event(self, path: str | Path) -> bool:
        """Queues `path` if the gate accepts it.

        Returns:
            bool: True if the path was queued.
        """
        rel_path = self.gate.relative_path(path)
        if rel_path is None:
            logger.debug(
                f"Skipping file: {path} (not in game folder or invalid extension)"
            )
            return False
        self.aggregator.enqueue(rel_path)
        return True

    async def settle(self) -> None:
        """Waits for timer-triggered flushes and their retries to finish."""
        while self._flushes or self.pipeline.retry.active:
            if self._flushes:
                await asyncio.gather(*list(self._flushes), return_exceptions=True)
            await self.pipeline.retry.wait()

    async def shutdown_flush(self) -> bool:
        """Stops scheduling work and publishes whatever is still queued, once.

        Returns:
            bool: True if nothing was pending or the final publish succeeded.
        """
        self.aggregator.cancel()
        self.pipeline.retry.cancel_all()
        await self.pipeline.wait_idle()
        # A publish that was in flight may have failed and scheduled a retry.
        self.aggregator.cancel()
        self.pipeline.retry.cancel_all()
        if not len(self.aggregator):
            return True

        logger.info("Pending changes detected. Attempting final push before exiting...")
        try:
            return await self.pipeline.flush(retry=False)
        finally:
            self.aggregator.cancel()

    def _on_quiet(self) -> None:
        task = asyncio.get_running_loop().create_task(self._flush())
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)

    async def _flush(self) -> None:
        try:
            await self.pipeline.flush()
        except Exception:
            logger.exception("Flush crashed")
