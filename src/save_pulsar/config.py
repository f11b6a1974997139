import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    CONTAINER_PATTERN,
    LOCAL_CONFIG_NAME,
    SAVE_EXTENSIONS,
)

logger = logging.getLogger(APP_NAME)

TIME_KEYS = {
    "debounce_delay",
    "retry_delay",
    "lock_wait_timeout",
    "lock_poll_interval",
    "shutdown_grace",
    "poll_interval",
    "stability_threshold",
    "stability_poll",
    "probe_timeout",
}
SIZE_KEYS = {"max_log_size"}


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '500ms', '5s', '2m') to seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    return num * multiplier[unit]


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        watch_root (str | None): The save folder, which is also the git working tree.
        remote_name (str): The git remote to pull from and push to.
        branch (str): The remote branch receiving save commits.
        commit_prefix (str): Leading text of every generated commit message.
    """

    watch_root: str | None = None
    remote_name: str = "origin"
    branch: str = "main"
    commit_prefix: str = "Update PPSSPP saves"


@dataclass
class FilesConfig:
    """Save file selection settings.

    Attributes:
        container_pattern (str): Regex the top-level save directory must match.
        extensions (list[str]): Allowed save file extensions.
        ignore (list[str]): Extra watcher ignore patterns (appended to defaults).
    """

    container_pattern: str = CONTAINER_PATTERN
    extensions: list[str] = field(default_factory=lambda: list(SAVE_EXTENSIONS))
    ignore: list[str] = field(default_factory=list)


@dataclass
class SyncConfig:
    """Batching and publishing settings.

    Attributes:
        debounce_delay (float): Quiet period in seconds before a batch is flushed.
        max_retries (int): Retry ceiling for a failed publish.
        retry_delay (float): Fixed delay in seconds between retries.
        lock_wait_timeout (float): Max seconds to wait for a file to be released.
        lock_poll_interval (float): Seconds between file lock probes.
        shutdown_grace (float): Max seconds for the final flush on shutdown.
    """

    debounce_delay: float = 5.0
    max_retries: int = 3
    retry_delay: float = 2.0
    lock_wait_timeout: float = 10.0
    lock_poll_interval: float = 0.5
    shutdown_grace: float = 30.0


@dataclass
class WatcherConfig:
    """Filesystem watcher settings.

    Attributes:
        poll_interval (float): Seconds between polling scans.
        stability_threshold (float): Max seconds a burst of writes is grouped for.
        stability_poll (float): Seconds without new writes before a group is emitted.
    """

    poll_interval: float = 3.0
    stability_threshold: float = 5.0
    stability_poll: float = 0.5


@dataclass
class NetworkConfig:
    """Startup reachability probe settings.

    Attributes:
        probe_host (str): Host contacted over TLS before the watcher starts.
        probe_port (int): Port used for the probe.
        probe_timeout (float): Connection timeout in seconds.
    """

    probe_host: str = "www.google.com"
    probe_port: int = 443
    probe_timeout: float = 5.0


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        files (FilesConfig): Save file selection.
        sync (SyncConfig): Batching and retry behavior.
        watcher (WatcherConfig): Watcher tuning.
        network (NetworkConfig): Reachability probe.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    files: FilesConfig = field(default_factory=FilesConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(
        cls, config_file: Path | None = None, watch_root: Path | None = None
    ) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            config_file (Path | None): Global config file. Defaults to CONFIG_FILE.
            watch_root (Path | None): Overrides `core.watch_root`; its
                save-pulsar.toml is merged last.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()

        # 1. Global config
        global_file = config_file or CONFIG_FILE
        if global_file.exists():
            instance._merge_from_file(global_file)

        # 2. Command line root wins over the configured one
        if watch_root is not None:
            instance.core = replace(instance.core, watch_root=str(watch_root))

        # 3. Local config inside the save folder
        if instance.core.watch_root:
            local_toml = Path(instance.core.watch_root).expanduser() / LOCAL_CONFIG_NAME
            if local_toml.exists():
                instance._merge_from_file(local_toml)

        return instance

    @property
    def root(self) -> Path | None:
        """The resolved watch root, or None if it was never configured."""
        if not self.core.watch_root:
            return None
        return Path(self.core.watch_root).expanduser().resolve()

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if not data:
                return

            for section in ("core", "sync", "watcher", "network", "limits"):
                if section in data:
                    setattr(
                        self,
                        section,
                        self._update_dataclass(
                            section, getattr(self, section), data[section]
                        ),
                    )
            if "files" in data:
                # Extract ignore list to prevent it from being overwritten during dataclass update
                new_ignores = data["files"].pop("ignore", [])
                self.files = self._update_dataclass("files", self.files, data["files"])
                if new_ignores:
                    self.files.ignore = list(
                        dict.fromkeys([*self.files.ignore, *new_ignores])
                    )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in SIZE_KEYS:
                    filtered_updates[k] = parse_size(v)
                elif k in TIME_KEYS:
                    filtered_updates[k] = parse_time(v)
                elif k == "max_retries" and (not isinstance(v, int) or v < 0):
                    raise ValueError(f"Invalid retry count '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
