import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from save_pulsar.constants import BATCH_SSH_COMMAND
from save_pulsar.git_wrapper import GitRepo


def test_init_rejects_plain_directory(tmp_path: Path) -> None:
    """Verifies that a folder without .git is refused."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_run_raises_with_git_stderr(mocker: MagicMock, repo_dir: Path) -> None:
    """Verifies that non-zero exits surface as RuntimeError carrying git's stderr."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1, ["git", "push"], stderr="fatal: could not read from remote"
        ),
    )
    repo = GitRepo(repo_dir)

    with pytest.raises(RuntimeError, match="Git error: fatal: could not read"):
        repo._run(["push", "origin", "main"])


def test_run_strips_output(mocker: MagicMock, repo_dir: Path) -> None:
    """Verifies that git runs in the repository and its stdout is stripped."""
    mock_run = mocker.patch(
        "subprocess.run",
        return_value=subprocess.CompletedProcess([], 0, stdout=" M a.bin\n", stderr=""),
    )
    repo = GitRepo(repo_dir)

    assert repo._run(["status", "--porcelain"]) == "M a.bin"
    assert mock_run.call_args.args[0] == ["git", "status", "--porcelain"]
    assert mock_run.call_args.kwargs["cwd"] == repo_dir


def test_network_commands_never_prompt(mocker: MagicMock, repo_dir: Path) -> None:
    """Verifies that pull and push run with batch-mode SSH."""
    repo = GitRepo(repo_dir)
    mock_run = mocker.patch.object(repo, "_run", return_value="")

    repo.pull("origin", "main")
    repo.push("backup", "saves")

    pull, push = mock_run.call_args_list
    assert pull.args[0] == ["pull", "origin", "main"]
    assert push.args[0] == ["push", "backup", "saves"]
    for call in (pull, push):
        assert call.kwargs["env"]["GIT_SSH_COMMAND"] == BATCH_SSH_COMMAND


def test_add_and_commit_flags(mocker: MagicMock, repo_dir: Path) -> None:
    """Verifies the optional force and allow-empty flags."""
    repo = GitRepo(repo_dir)
    mock_run = mocker.patch.object(repo, "_run", return_value="")

    repo.add("UABC12345/data0000.bin")
    mock_run.assert_called_with(["add", "--", "UABC12345/data0000.bin"])

    repo.add("UABC12345/data0000.bin", force=True)
    mock_run.assert_called_with(["add", "-f", "--", "UABC12345/data0000.bin"])

    repo.commit("msg")
    mock_run.assert_called_with(["commit", "-m", "msg"])

    repo.commit("msg", allow_empty=True)
    mock_run.assert_called_with(["commit", "--allow-empty", "-m", "msg"])


def test_status_porcelain_lines(mocker: MagicMock, repo_dir: Path) -> None:
    """Verifies that empty output means a clean tree."""
    repo = GitRepo(repo_dir)
    mock_run = mocker.patch.object(repo, "_run")

    mock_run.return_value = ""
    assert repo.status_porcelain() == []

    mock_run.return_value = "M  UABC12345/data0000.bin\n?? UABC12345/icon0.png"
    assert repo.status_porcelain("UABC12345") == [
        "M  UABC12345/data0000.bin",
        "?? UABC12345/icon0.png",
    ]
    mock_run.assert_called_with(["status", "--porcelain", "UABC12345"])


def test_index_lock_location(repo_dir: Path) -> None:
    assert GitRepo(repo_dir).index_lock == repo_dir / ".git" / "index.lock"
