"""Tests for the git command wrapper."""

import subprocess
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from git_syncd.git_wrapper import GitCommandError, GitRepo, seed_ignore_file


@pytest.fixture
def repo(tmp_path: Path) -> GitRepo:
    (tmp_path / ".git").mkdir()
    return GitRepo(tmp_path, timeout=5)


def test_rejects_non_repository(tmp_path: Path) -> None:
    """Verifies that a directory without .git is refused."""
    with pytest.raises(ValueError, match="Not a git repository"):
        GitRepo(tmp_path)


def test_run_trims_stdout_and_sets_locale(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies that output is trimmed and git runs in the C locale."""
    mock_run = mocker.patch(
        "subprocess.run", return_value=MagicMock(stdout="  abc123\n\n")
    )

    assert repo._run(["rev-parse", "HEAD"]) == "abc123"

    args, kwargs = mock_run.call_args
    assert args[0] == ["git", "rev-parse", "HEAD"]
    assert kwargs["cwd"] == repo.path
    assert kwargs["timeout"] == 5
    assert kwargs["env"]["LC_ALL"] == "C"
    assert kwargs["env"]["GIT_TERMINAL_PROMPT"] == "0"


def test_run_raises_on_nonzero_exit(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies that a failing command surfaces as GitCommandError."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1, ["git", "push"], stderr="rejected (non-fast-forward)"
        ),
    )

    with pytest.raises(GitCommandError) as excinfo:
        repo.push("origin")

    assert excinfo.value.command == "push"
    assert excinfo.value.returncode == 1
    assert "non-fast-forward" in str(excinfo.value)


def test_error_falls_back_to_stdout(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies that merge conflicts, reported on stdout, reach the message."""
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(
            1,
            ["git", "merge"],
            output="CONFLICT (content): Merge conflict in seed.txt\n",
            stderr="",
        ),
    )

    with pytest.raises(GitCommandError) as excinfo:
        repo.merge("origin/master")

    assert excinfo.value.command == "merge"
    assert str(excinfo.value).endswith("CONFLICT (content): Merge conflict in seed.txt")


def test_error_command_skips_config_overrides() -> None:
    error = GitCommandError(["-c", "core.quotePath=false", "status", "--long"], 1)
    assert error.command == "status"


def test_run_raises_on_timeout(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies that a hung command is reported as a timed-out failure."""
    mocker.patch(
        "subprocess.run", side_effect=subprocess.TimeoutExpired(["git", "fetch"], 5)
    )

    with pytest.raises(GitCommandError, match="timed out") as excinfo:
        repo.fetch()

    assert excinfo.value.returncode is None


def test_primitive_command_lines(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies the exact git invocations behind each primitive."""
    mock_run = mocker.patch.object(repo, "_run", return_value="")

    repo.add_all()
    mock_run.assert_called_with(["add", "--all"])

    repo.commit("added 'notes.txt'.")
    mock_run.assert_called_with(["commit", "-m", "added 'notes.txt'."])

    repo.fetch("origin")
    mock_run.assert_called_with(["fetch", "origin"])

    repo.merge("origin/master")
    mock_run.assert_called_with(["merge", "--no-edit", "origin/master"])

    repo.merge_abort()
    mock_run.assert_called_with(["merge", "--abort"])

    repo.status()
    mock_run.assert_called_with(
        ["-c", "core.quotePath=false", "status", "--long"]
    )

    repo.push("origin")
    mock_run.assert_called_with(["push", "origin", "HEAD"])

    repo.log("%an", 1)
    mock_run.assert_called_with(["log", "-1", "--format=%an"])


def test_lookups_return_none_on_failure(repo: GitRepo, mocker: MagicMock) -> None:
    """Verifies that missing config, empty history and no upstream are not errors."""
    mocker.patch.object(
        repo, "_run", side_effect=GitCommandError(["config"], 1, "")
    )

    assert repo.config_get("user.name") is None
    assert repo.rev_parse_head() is None
    assert repo.tracking_branch() is None


def test_config_get_treats_empty_as_missing(repo: GitRepo, mocker: MagicMock) -> None:
    mocker.patch.object(repo, "_run", return_value="")
    assert repo.config_get("user.email") is None


def test_clone_seeds_gitignore(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that cloning appends the editor swap patterns to .gitignore."""
    dest = tmp_path / "project"

    def fake_clone(cmd: list[str], **kwargs: object) -> MagicMock:
        (dest / ".git").mkdir(parents=True)
        (dest / ".gitignore").write_text("build/")
        return MagicMock(stdout="")

    mock_run = mocker.patch("subprocess.run", side_effect=fake_clone)

    repo = GitRepo.clone("git@github.com:user/project.git", dest)

    assert mock_run.call_args[0][0] == [
        "git",
        "clone",
        "git@github.com:user/project.git",
        str(dest),
    ]
    assert repo.path == dest
    assert (dest / ".gitignore").read_text() == "build/\n*~\n.*.sw?\n"


def test_clone_failure_raises(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch(
        "subprocess.run",
        side_effect=subprocess.CalledProcessError(128, ["git", "clone"], stderr="nope"),
    )

    with pytest.raises(GitCommandError, match="nope"):
        GitRepo.clone("https://example.com/x.git", tmp_path / "x")


def test_seed_ignore_file_is_idempotent(tmp_path: Path) -> None:
    """Verifies that existing patterns are not duplicated."""
    seed_ignore_file(tmp_path)
    seed_ignore_file(tmp_path)

    assert (tmp_path / ".gitignore").read_text().splitlines() == ["*~", ".*.sw?"]
