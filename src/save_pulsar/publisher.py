"""Single-flight commit and push of a settled batch of save files."""

import asyncio
import datetime
import logging
from collections.abc import Iterable
from dataclasses import dataclass

from .aggregator import ChangeAggregator
from .config import Config
from .constants import APP_NAME
from .gate import wait_for_release
from .git_wrapper import GitRepo
from .retry import RetryController
from .system import SystemStrategy

logger = logging.getLogger(APP_NAME)


@dataclass(frozen=True)
class PublishAttempt:
    """One in-flight publish of a batch.

    Attributes:
        batch (frozenset[str]): Every path taken from the queue, before filtering.
        files (tuple[str, ...]): The paths that still exist and are being committed.
        message (str): The generated commit message.
        attempt (int): The retry counter when the attempt started (0 = first try).
    """

    batch: frozenset[str]
    files: tuple[str, ...]
    message: str
    attempt: int = 0


def get_localized_timestamp(now: datetime.datetime | None = None) -> str:
    """Formats `now` (default: the current local time) with the locale's conventions."""
    now = now or datetime.datetime.now()
    return now.strftime("%x %X")


def build_commit_message(
    prefix: str, files: Iterable[str], now: datetime.datetime | None = None
) -> str:
    """Builds the commit message listing `files` and a local timestamp."""
    return f"{prefix}: {', '.join(files)} - {get_localized_timestamp(now)}"


class PublishPipeline:
    """Commits and pushes batches drained from the aggregator.

    At most one flush runs the pipeline at a time; a flush requested meanwhile
    returns immediately and leaves the queue untouched.

    Attributes:
        repo (GitRepo): The repository behind the watch root.
        aggregator (ChangeAggregator): The queue batches are drained from.
        retry (RetryController): Schedules retries of failed batches.
    """

    def __init__(
        self,
        repo: GitRepo,
        aggregator: ChangeAggregator,
        config: Config,
        system: SystemStrategy | None = None,
    ):
        self.repo = repo
        self.aggregator = aggregator
        self.config = config
        self.retry = RetryController(
            aggregator.requeue,
            self.flush,
            max_retries=config.sync.max_retries,
            delay=config.sync.retry_delay,
            system=system,
        )
        self._publishing = False
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def publishing(self) -> bool:
        """bool: Whether a flush currently holds the publish lock."""
        return self._publishing

    async def wait_idle(self) -> None:
        """Waits until no flush holds the publish lock."""
        await self._idle.wait()

    async def flush(self, retry: bool = True) -> bool:
        """Publishes everything currently queued.

        Args:
            retry (bool, optional): Whether a failure schedules a retry.
                                    Defaults to True.

        Returns:
            bool: False if the publish failed, True otherwise (including no-ops).
        """
        # No await between the check and taking the lock.
        if self._publishing or not len(self.aggregator):
            logger.info(
                "Skipping push: No changes to commit or another push operation is active."
            )
            return True

        self._publishing = True
        self._idle.clear()
        batch = self.aggregator.drain()
        try:
            await self._publish(batch)
        except (RuntimeError, OSError) as e:
            logger.error(f"Error during push: {e}")
            if retry:
                self.retry.schedule_retry(batch)
            return False
        finally:
            self._publishing = False
            self._idle.set()
            self.aggregator.rearm()

        return True

    async def _publish(self, batch: frozenset[str]) -> None:
        logger.info(f"Processing {len(batch)} file(s): {', '.join(sorted(batch))}")

        await self._cleanup()

        files = await self._settled_files(batch)
        if not files:
            logger.info("No valid files to push")
            return

        attempt = PublishAttempt(
            batch=batch,
            files=files,
            message=build_commit_message(self.config.core.commit_prefix, files),
            attempt=self.retry.count,
        )
        await self._stage(attempt)

        logger.info(f'Force committing with message: "{attempt.message}"')
        await asyncio.to_thread(self.repo.commit, attempt.message, allow_empty=True)

        remote, branch = self.config.core.remote_name, self.config.core.branch
        logger.info(f"Pushing to {remote}/{branch}...")
        await asyncio.to_thread(self.repo.push, remote, branch)

        logger.info(f"Push complete for: {', '.join(attempt.files)}")
        self.retry.reset()

    async def _cleanup(self) -> None:
        """Clears a leftover index lock and catches up with the remote."""
        lock_file = self.repo.index_lock
        if lock_file.exists():
            try:
                lock_file.unlink()
                logger.info("Git lock file removed.")
            except OSError as e:
                logger.error(f"Failed to remove lock file: {e}")

        remote, branch = self.config.core.remote_name, self.config.core.branch
        try:
            await asyncio.to_thread(self.repo.pull, remote, branch)
            logger.info("Git updated from remote")
        except RuntimeError as e:
            logger.warning(f"Git pull failed: {e}")

    async def _settled_files(self, batch: frozenset[str]) -> tuple[str, ...]:
        """Keeps the files that still exist, waiting briefly for each to be released."""
        sync = self.config.sync
        existing = []
        for rel_path in sorted(batch):
            full_path = self.repo.path / rel_path
            if not full_path.is_file():
                logger.info(f"File not found, skipping: {rel_path}")
                continue
            await wait_for_release(
                full_path, sync.lock_wait_timeout, sync.lock_poll_interval
            )
            existing.append(rel_path)
        return tuple(existing)

    async def _stage(self, attempt: PublishAttempt) -> None:
        """Stages each file, forcing them in when git sees nothing to commit."""
        for rel_path in attempt.files:
            try:
                logger.info(f"Adding: {rel_path}")
                await asyncio.to_thread(self.repo.add, rel_path)
            except RuntimeError as e:
                logger.warning(f"Failed to add {rel_path}: {e}")

        try:
            status = await asyncio.to_thread(self.repo.status_porcelain)
        except RuntimeError as e:
            logger.error(f"Error checking Git status: {e}")
            return

        if status:
            return

        logger.info("Git reports no changes, but forcing commit anyway...")
        for rel_path in attempt.files:
            try:
                await asyncio.to_thread(self.repo.add, rel_path, force=True)
            except RuntimeError as e:
                logger.warning(f"Failed to force-add {rel_path}: {e}")
