"""Save Pulsar: Automated synchronization of save files to a git remote.

This package provides the background daemon and the batched synchronization
engine that turns bursts of save-file writes into single commit and push
operations.
"""

from . import (
    aggregator,
    config,
    constants,
    daemon,
    engine,
    gate,
    git_wrapper,
    publisher,
    retry,
    system,
    watcher,
)

__all__ = [
    "aggregator",
    "config",
    "constants",
    "daemon",
    "engine",
    "gate",
    "git_wrapper",
    "publisher",
    "retry",
    "system",
    "watcher",
]
