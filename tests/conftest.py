"""Shared fixtures for the sync engine tests."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from save_pulsar.config import Config
from save_pulsar.git_wrapper import GitRepo
from save_pulsar.system import SystemStrategy


@pytest.fixture
def repo_dir(tmp_path: Path) -> Path:
    """A save folder that looks like a git working tree."""
    (tmp_path / ".git").mkdir()
    return tmp_path


@pytest.fixture
def fast_config(repo_dir: Path) -> Config:
    """Default config with every delay shrunk so tests run in milliseconds."""
    conf = Config()
    conf.core.watch_root = str(repo_dir)
    conf.sync.debounce_delay = 0.05
    conf.sync.retry_delay = 0.01
    conf.sync.lock_wait_timeout = 0.05
    conf.sync.lock_poll_interval = 0.01
    conf.sync.shutdown_grace = 2.0
    return conf


@pytest.fixture
def git_run(mocker: MagicMock) -> MagicMock:
    """Replaces every git invocation with a mock returning empty output."""
    return mocker.patch.object(GitRepo, "_run", return_value="")


@pytest.fixture
def repo(repo_dir: Path, git_run: MagicMock) -> GitRepo:
    """A GitRepo whose commands are recorded by `git_run`."""
    return GitRepo(repo_dir)


@pytest.fixture
def notifier() -> MagicMock:
    """A system strategy that records notifications instead of showing them."""
    return MagicMock(spec=SystemStrategy)


@pytest.fixture
def make_save(repo_dir: Path) -> Callable[[str], Path]:
    """Creates a save file at a root-relative path and returns its full path."""

    def _make(rel_path: str, content: bytes = b"save") -> Path:
        path = repo_dir / rel_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        return path

    return _make


def git_commands(git_run: MagicMock) -> list[list[str]]:
    """Returns the argument lists of every recorded git call, in order."""
    return [c.args[0] for c in git_run.call_args_list]
