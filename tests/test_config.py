"""Tests for the configuration management subsystem."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from save_pulsar.config import Config, parse_size, parse_time
from save_pulsar.constants import CONTAINER_PATTERN


@pytest.fixture(autouse=True)
def no_global_config(mocker: MagicMock, tmp_path: Path) -> Path:
    """Points the global config at a file that does not exist yet."""
    path = tmp_path / "global_config.toml"
    mocker.patch("save_pulsar.config.CONFIG_FILE", path)
    return path


def test_config_defaults() -> None:
    """Verifies that the configuration initializes with the documented defaults."""
    conf = Config()
    assert conf.core.watch_root is None
    assert conf.core.remote_name == "origin"
    assert conf.core.branch == "main"
    assert conf.core.commit_prefix == "Update PPSSPP saves"
    assert conf.files.container_pattern == CONTAINER_PATTERN
    assert conf.files.extensions == [".bin", ".png", ".sfo"]
    assert conf.files.ignore == []
    assert conf.sync.debounce_delay == 5
    assert conf.sync.max_retries == 3
    assert conf.sync.retry_delay == 2
    assert conf.sync.lock_wait_timeout == 10
    assert conf.watcher.poll_interval == 3
    assert conf.root is None


def test_config_load_merges_layers(tmp_path: Path, no_global_config: Path) -> None:
    """Verifies the cascading merge logic (Defaults -> Global -> Local).

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        no_global_config (Path): The patched global config location.
    """
    saves = tmp_path / "saves"
    saves.mkdir()
    no_global_config.write_text(
        f'[core]\nwatch_root = "{saves}"\nremote_name = "upstream"\n'
        '[sync]\ndebounce_delay = "10s"\n'
        '[files]\nignore = ["*.log"]\n'
    )
    (saves / "save-pulsar.toml").write_text(
        '[sync]\ndebounce_delay = "2s"\n[files]\nignore = ["*.tmp", "*.log"]\n'
    )

    conf = Config.load()

    assert conf.core.remote_name == "upstream"  # From Global
    assert conf.sync.debounce_delay == 2  # Local overrides Global
    assert conf.files.ignore == ["*.log", "*.tmp"]  # Appended, deduplicated
    assert conf.root == saves.resolve()


def test_command_line_root_overrides_config(
    tmp_path: Path, no_global_config: Path
) -> None:
    """Verifies that --root wins and its local file is the one merged."""
    configured = tmp_path / "configured"
    chosen = tmp_path / "chosen"
    configured.mkdir()
    chosen.mkdir()
    no_global_config.write_text(f'[core]\nwatch_root = "{configured}"\n')
    (configured / "save-pulsar.toml").write_text('[core]\nbranch = "wrong"\n')
    (chosen / "save-pulsar.toml").write_text('[core]\nbranch = "saves"\n')

    conf = Config.load(watch_root=chosen)

    assert conf.root == chosen.resolve()
    assert conf.core.branch == "saves"


def test_explicit_config_file(tmp_path: Path) -> None:
    """Verifies that --config replaces the default global file."""
    custom = tmp_path / "custom.toml"
    custom.write_text(
        '[files]\nextensions = [".sav"]\ncontainer_pattern = "^SLUS\\\\d+$"\n'
        "[sync]\nmax_retries = 5\n"
    )

    conf = Config.load(config_file=custom)

    assert conf.files.extensions == [".sav"]
    assert conf.files.container_pattern == r"^SLUS\d+$"
    assert conf.sync.max_retries == 5


def test_missing_config_files_are_fine(tmp_path: Path) -> None:
    """Verifies that loading without any file on disk yields the defaults."""
    conf = Config.load(config_file=tmp_path / "missing.toml", watch_root=tmp_path)

    assert conf.core.watch_root == str(tmp_path)
    assert conf.sync == Config().sync


def test_parse_size() -> None:
    """Verifies that human-readable sizes are correctly converted to bytes."""
    assert parse_size(100) == 100
    assert parse_size("100kb") == 102400
    assert parse_size("10 MB") == 10485760
    assert parse_size("1.5gb") == int(1.5 * 1024**3)

    with pytest.raises(ValueError, match=r"Invalid size format '100 bits'"):
        parse_size("100 bits")


def test_parse_time() -> None:
    """Verifies that human-readable times are correctly converted to seconds."""
    assert parse_time(50) == 50
    assert parse_time(0.25) == 0.25
    assert parse_time("500ms") == 0.5
    assert parse_time("30s") == 30
    assert parse_time("10 min") == 600
    assert parse_time("2 hrs") == 7200
    assert parse_time("1.5h") == 5400

    with pytest.raises(ValueError, match=r"Invalid time format '10 lightyears'"):
        parse_time("10 lightyears")


def test_config_invalid_keys_and_values(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that unknown keys are ignored and invalid values fallback to defaults.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        caplog (pytest.LogCaptureFixture): Pytest fixture for capturing logs.
    """
    caplog.set_level(logging.WARNING)

    (tmp_path / "save-pulsar.toml").write_text(
        "[sync]\n"
        'debounce_delay = "soon"\n'
        "max_retries = -1\n"
        'fake_setting = "ignored"\n'
        "[limits]\n"
        'max_log_size = "10 gallons"\n'
    )

    conf = Config.load(watch_root=tmp_path)

    assert conf.sync.debounce_delay == 5
    assert conf.sync.max_retries == 3
    assert conf.limits.max_log_size == 5242880

    assert "Unknown config keys in [sync]: fake_setting" in caplog.text
    assert "Config error in [sync].debounce_delay: Invalid time format" in caplog.text
    assert "Config error in [sync].max_retries: Invalid retry count" in caplog.text
    assert "Config error in [limits].max_log_size: Invalid size format" in caplog.text


def test_config_syntax_error_is_logged(
    tmp_path: Path, caplog: pytest.LogCaptureFixture
) -> None:
    """Verifies that a malformed file leaves the defaults in place."""
    (tmp_path / "save-pulsar.toml").write_text("[sync\ndebounce_delay = 1\n")

    conf = Config.load(watch_root=tmp_path)

    assert conf.sync.debounce_delay == 5
    assert "Config syntax error" in caplog.text
