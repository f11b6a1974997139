"""Decides which filesystem events are save artifacts worth synchronizing.

The gate itself is a pure predicate over a path and its position under the
watch root. The file lock probe used right before staging lives here too,
since it answers the same question at a later point in time: is this file
settled?
"""

import asyncio
import errno
import logging
import re
from collections.abc import Iterable
from pathlib import Path, PurePath

from .constants import APP_NAME, CONTAINER_PATTERN, SAVE_EXTENSIONS

logger = logging.getLogger(APP_NAME)

# Errors that mean another process still holds the file (or is mid-rename).
LOCKED_ERRNOS = {errno.EBUSY, errno.ENOENT}


class StabilityGate:
    """Filters raw watch events down to save files inside a save container.

    Attributes:
        root (Path): The watch root; accepted paths are reported relative to it.
        container_re (re.Pattern): Pattern the top-level directory must match.
        extensions (frozenset[str]): Lower-cased allowed file extensions.
    """

    def __init__(
        self,
        root: Path,
        container_pattern: str = CONTAINER_PATTERN,
        extensions: Iterable[str] = SAVE_EXTENSIONS,
    ):
        self.root = Path(root)
        self.container_re = re.compile(container_pattern, re.IGNORECASE)
        self.extensions = frozenset(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in extensions
        )

    def relative_path(self, path: str | PurePath) -> str | None:
        """Returns the root-relative POSIX path if the gate accepts `path`.

        Args:
            path (str | PurePath): An absolute path under the root, or a path
                                   already relative to it.

        Returns:
            str | None: The relative path with forward slashes, or None if rejected.
        """
        candidate = PurePath(path)
        if candidate.is_absolute():
            try:
                candidate = candidate.relative_to(self.root)
            except ValueError:
                return None

        parts = candidate.parts
        if len(parts) < 2 or ".." in parts:
            return None
        if not self.container_re.match(parts[0]):
            return None
        if candidate.suffix.lower() not in self.extensions:
            return None
        return candidate.as_posix()

    def evaluate(self, path: str | PurePath) -> bool:
        """Accepts or rejects a path (see `relative_path`)."""
        return self.relative_path(path) is not None


def is_file_locked(path: Path) -> bool:
    """Probes whether another process is holding `path` open for writing.

    Args:
        path (Path): The file to probe.

    Returns:
        bool: True if opening the file for update fails with a busy/missing error.
    """
    try:
        with open(path, "r+b"):
            return False
    except OSError as e:
        return e.errno in LOCKED_ERRNOS


async def wait_for_release(
    path: Path, timeout: float = 10.0, poll_interval: float = 0.5
) -> bool:
    """Waits until `path` is no longer locked, giving up after `timeout` seconds.

    Giving up is not an error: the caller proceeds with the file either way.

    Returns:
        bool: True if the file was released, False if the wait timed out.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while loop.time() < deadline:
        if not is_file_locked(path):
            return True
        await asyncio.sleep(poll_interval)

    logger.warning(f"File may still be locked: {path}")
    return False
