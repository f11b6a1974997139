import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, BATCH_SSH_COMMAND, INDEX_LOCK

logger = logging.getLogger(APP_NAME)


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    This class provides the handful of operations the publish pipeline needs,
    abstracting away command construction and output handling. Every call blocks
    until git exits, so async callers run them in a worker thread.

    Attributes:
        path (Path): The file system path to the repository root.
    """

    def __init__(self, path: Path):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Environment variables to pass to the
                                            subprocess. Defaults to None.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            RuntimeError: If the git command returns a non-zero exit code.
        """
        logger.debug(f"Executing: git {' '.join(args)} in {self.path}")
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=env,
            )
        except subprocess.CalledProcessError as e:
            raise RuntimeError(f"Git error: {e.stderr or e}") from e

        if capture and res.stderr and res.stderr.strip():
            # git reports progress and hints on stderr even when it succeeds.
            logger.debug(f"git {args[0]} stderr: {res.stderr.strip()}")
        return res.stdout.strip() if capture else ""

    @staticmethod
    def _batch_env() -> dict[str, str]:
        """Environment for network commands that must never prompt."""
        env = os.environ.copy()
        env["GIT_SSH_COMMAND"] = BATCH_SSH_COMMAND
        return env

    @property
    def index_lock(self) -> Path:
        """Path: The repository's index lock file."""
        return self.path / INDEX_LOCK

    def pull(self, remote: str, branch: str) -> str:
        """Fetches and integrates the remote branch into the working tree.

        Args:
            remote (str): The remote name (e.g. 'origin').
            branch (str): The branch to pull.

        Returns:
            str: The output of `git pull`.
        """
        return self._run(["pull", remote, branch], env=self._batch_env())

    def add(self, path: str, force: bool = False) -> None:
        """Stages a single file.

        Args:
            path (str): The repository-relative path to stage.
            force (bool, optional): Whether to pass `-f` (stage even if ignored
                                    or unchanged). Defaults to False.
        """
        cmd = ["add"]
        if force:
            cmd.append("-f")
        cmd.extend(["--", path])
        self._run(cmd)

    def status_porcelain(self, path: str | None = None) -> list[str]:
        """Returns the porcelain (machine-readable) status of the repository.

        Args:
            path (Optional[str], optional): A specific path to check status for.
                                            Defaults to None.

        Returns:
            list[str]: A list of status lines returned by `git status --porcelain`.
        """
        cmd = ["status", "--porcelain"]
        if path:
            cmd.append(path)
        output = self._run(cmd)
        return output.splitlines() if output else []

    def commit(self, message: str, allow_empty: bool = False) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
            allow_empty (bool, optional): Whether to pass `--allow-empty` so the
                                          commit succeeds without staged changes.
                                          Defaults to False.
        """
        cmd = ["commit"]
        if allow_empty:
            cmd.append("--allow-empty")
        cmd.extend(["-m", message])
        self._run(cmd)

    def push(self, remote: str, branch: str) -> None:
        """Pushes the local branch to the remote.

        Args:
            remote (str): The remote name.
            branch (str): The branch to push.
        """
        self._run(["push", remote, branch], env=self._batch_env())
