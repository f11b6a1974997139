import argparse
import asyncio
import atexit
import logging
import os
import signal
import socket
import ssl
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from rich.console import Console

from .config import Config
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .engine import SyncEngine
from .git_wrapper import GitRepo
from .system import SystemStrategy, get_system
from .watcher import SaveWatcher

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)


def is_remote_reachable(host: str, port: int = 443, timeout: float = 5.0) -> bool:
    """Checks connectivity by completing a TLS handshake with `host`.

    Args:
        host (str): The hostname to contact.
        port (int, optional): The TLS port. Defaults to 443.
        timeout (float, optional): Connection timeout in seconds. Defaults to 5.0.

    Returns:
        bool: True if the handshake succeeded, False otherwise.
    """
    if not host:
        return False

    context = ssl.create_default_context()
    try:
        with socket.create_connection((host, port), timeout=timeout) as sock:
            with context.wrap_socket(sock, server_hostname=host):
                return True
    except OSError as e:
        logger.error(f"Internet connection check failed: {e}")
        return False


def setup_logging(interactive: bool, max_log_size: int = 5 * 1024 * 1024) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int, optional): Bytes before the log file is rotated.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to a stream (captured by systemd/launchd in daemon mode).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def write_pid_file() -> None:
    """Records the daemon's PID and removes it again at exit."""
    try:
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


class Supervisor:
    """Starts the sync engine after the preflight checks and drains it on shutdown.

    Attributes:
        config (Config): The loaded configuration.
        engine (SyncEngine | None): Created once the preflight checks pass.
    """

    def __init__(
        self,
        config: Config,
        interactive: bool = False,
        system: SystemStrategy | None = None,
    ):
        self.config = config
        self.interactive = interactive
        self.system = system or get_system()
        self.engine: SyncEngine | None = None
        self._stop = asyncio.Event()

    def request_stop(self) -> None:
        """Signal handler: begins the graceful shutdown."""
        if not self._stop.is_set():
            logger.info("Shutting down...")
        self._stop.set()

    async def run(self) -> int:
        """Runs the daemon until a termination signal arrives.

        Returns:
            int: The process exit status.
        """
        root = self.config.root
        if root is None:
            err_console.print(
                "[bold red]FATAL:[/bold red] No watch root configured. "
                "Set \\[core].watch_root or pass --root."
            )
            return 1

        try:
            repo = GitRepo(root)
        except ValueError as e:
            logger.critical(f"{e}")
            return 1

        net = self.config.network
        if not await asyncio.to_thread(
            is_remote_reachable, net.probe_host, net.probe_port, net.probe_timeout
        ):
            logger.error(
                "No internet connection detected. Daemon terminated. "
                "Please check your network."
            )
            return 1
        logger.info("Internet connected. Starting the save watcher...")

        self.engine = SyncEngine(repo, self.config, system=self.system)
        watcher = SaveWatcher(
            root, self.engine.handle_event, self.config.watcher, self.config.files.ignore
        )

        loop = asyncio.get_running_loop()
        for sig in SHUTDOWN_SIGNALS:
            loop.add_signal_handler(sig, self.request_stop)

        try:
            watch_task = loop.create_task(watcher.run())
            logger.info(f"Monitoring saves: {root}")
            if self.interactive:
                console.print(
                    f"[bold green]Watching[/bold green] {root} "
                    "[dim](Ctrl+C to stop)[/dim]"
                )

            stop_task = loop.create_task(self._stop.wait())
            await asyncio.wait(
                {watch_task, stop_task}, return_when=asyncio.FIRST_COMPLETED
            )
            if watch_task.done() and not watch_task.cancelled():
                if exc := watch_task.exception():
                    logger.error(f"Watcher error: {exc}")

            watcher.stop()
            for task in (watch_task, stop_task):
                task.cancel()
            await asyncio.gather(watch_task, stop_task, return_exceptions=True)

            return await self._drain(self.engine)
        finally:
            for sig in SHUTDOWN_SIGNALS:
                loop.remove_signal_handler(sig)

    async def _drain(self, engine: SyncEngine) -> int:
        """Publishes what is still queued, bounded by the grace timeout."""
        grace = self.config.sync.shutdown_grace
        try:
            ok = await asyncio.wait_for(engine.shutdown_flush(), timeout=grace)
        except TimeoutError:
            logger.error(f"Final push did not finish within {grace:g}s.")
            ok = False

        if not ok:
            logger.error("Final push failed. Exiting with pending changes.")
        return 0 if ok else 1


def main(argv: list[str] | None = None) -> None:
    """Entry point for the `save-pulsar` daemon.

    Args:
        argv (list[str] | None, optional): Command line arguments. Defaults to sys.argv.
    """
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Commit and push save files as soon as they settle.",
    )
    parser.add_argument("--root", type=Path, help="Save folder (a git working tree)")
    parser.add_argument(
        "--config", type=Path, default=None, help="Path to the global config file"
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Log to the terminal instead of the daemon log file",
    )
    args = parser.parse_args(argv)

    config = Config.load(config_file=args.config, watch_root=args.root)
    setup_logging(args.interactive, config.limits.max_log_size)
    if not args.interactive:
        write_pid_file()

    sys.exit(asyncio.run(Supervisor(config, interactive=args.interactive).run()))


if __name__ == "__main__":
    main()
