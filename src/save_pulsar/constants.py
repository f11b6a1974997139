import os
from pathlib import Path

"""Global constants and path definitions for Save Pulsar.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default save-file conventions used across the
application.
"""

# --- Identity ---
APP_NAME = "save-pulsar"
"""str: The human-readable application name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "save-pulsar"
"""Path: The directory for runtime state data (logs, pid file)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/save-pulsar"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = "save-pulsar.toml"
"""str: Name of the optional per-folder config file inside the watch root."""

# --- Save File Conventions ---
CONTAINER_PATTERN = r"^[A-Z]{2}[A-Z]{2}\d{5}[A-Z0-9]*$"
"""
str: Save container directory names: region letters, publisher prefix,
five-digit serial and an optional slot suffix (e.g. 'ULUS10041DATA00').
"""

SAVE_EXTENSIONS = [".bin", ".png", ".sfo"]
"""list[str]: File extensions that make up a save artifact."""

DEFAULT_IGNORES = [
    r"^\.",
    r"^tmp_",
]
"""list[str]: Entity-name patterns the watcher never reports."""

# --- Git ---
INDEX_LOCK = Path(".git") / "index.lock"
"""Path: The git index lock, relative to the repository root."""

BATCH_SSH_COMMAND = "ssh -o BatchMode=yes"
"""str: SSH command that fails instead of prompting when run unattended."""
