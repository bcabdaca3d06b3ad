"""Tests for the registry helpers and desktop integration."""

from pathlib import Path
from unittest.mock import MagicMock

import httpx
import pytest

from git_syncd import system


@pytest.fixture
def registry(tmp_path: Path, mocker: MagicMock) -> Path:
    path = tmp_path / "state" / "registry"
    mocker.patch("git_syncd.system.REGISTRY_FILE", path)
    return path


def test_registry_round_trip(registry: Path) -> None:
    """Verifies register, duplicate registration and removal.

    Args:
        registry (Path): The temporary registry file.
    """
    assert system.get_registered_repos() == []

    assert system.register_repo(Path("/a")) is True
    assert system.register_repo(Path("/b")) is True
    assert system.register_repo(Path("/a")) is False
    assert system.get_registered_repos() == [Path("/a"), Path("/b")]

    assert system.unregister_repo(Path("/a")) is True
    assert system.unregister_repo(Path("/a")) is False
    assert registry.read_text() == "/b\n"


def test_write_registry_drops_duplicates_and_temp_file(registry: Path) -> None:
    system.write_registry([Path("/a"), Path("/b"), Path("/a")])

    assert registry.read_text() == "/a\n/b\n"
    assert not registry.with_suffix(".tmp").exists()


def test_get_registered_repos_skips_blank_lines(registry: Path) -> None:
    registry.parent.mkdir(parents=True)
    registry.write_text("/a\n\n  \n/b\n")

    assert system.get_registered_repos() == [Path("/a"), Path("/b")]


def test_linux_notify_without_action(mocker: MagicMock) -> None:
    """Verifies the plain notify-send call.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mock_run = mocker.patch("subprocess.run")

    system.LinuxStrategy().notify("alice fix bug", "notes")

    args = mock_run.call_args[0][0]
    assert args == ["notify-send", "--app-name", "git-syncd", "alice fix bug", "notes"]


def test_linux_notify_with_action_waits_on_thread(
    tmp_path: Path, mocker: MagicMock
) -> None:
    """Verifies that the action button is offered without blocking the caller."""
    mock_thread = mocker.patch("git_syncd.system.threading.Thread")
    strategy = system.LinuxStrategy()

    strategy.notify("alice fix bug", "notes", action_path=tmp_path)

    kwargs = mock_thread.call_args.kwargs
    cmd, path = kwargs["args"]
    assert cmd[:3] == ["notify-send", "--action=open=Open Folder", "--wait"]
    assert path == tmp_path
    assert kwargs["daemon"] is True
    mock_thread.return_value.start.assert_called_once()


@pytest.mark.parametrize(("answer", "opened"), [("open\n", True), ("", False)])
def test_linux_action_opens_folder(
    tmp_path: Path, mocker: MagicMock, answer: str, opened: bool
) -> None:
    mocker.patch("subprocess.run", return_value=MagicMock(stdout=answer))
    strategy = system.LinuxStrategy()
    mock_open = mocker.patch.object(strategy, "open_folder")

    strategy._await_action(["notify-send"], tmp_path)

    assert mock_open.called is opened


def test_linux_notify_without_notify_send(mocker: MagicMock) -> None:
    mocker.patch("subprocess.run", side_effect=FileNotFoundError)

    system.LinuxStrategy().notify("title", "body")


def test_macos_notify_sanitizes_quotes(mocker: MagicMock) -> None:
    mock_run = mocker.patch("subprocess.run")

    system.MacOSStrategy().notify('say "hi"', "notes")

    script = mock_run.call_args[0][0][2]
    assert script == "display notification \"notes\" with title \"say 'hi'\""


@pytest.mark.parametrize(
    ("platform", "cls"),
    [
        ("darwin", system.MacOSStrategy),
        ("linux", system.LinuxStrategy),
        ("win32", system.SystemStrategy),
    ],
)
def test_get_system(mocker: MagicMock, platform: str, cls: type) -> None:
    mocker.patch("sys.platform", platform)
    assert type(system.get_system()) is cls


def test_cached_avatar_downloads_once(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that an avatar is fetched once and then served from the cache.

    Args:
        tmp_path (Path): Pytest fixture for a temporary directory.
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mocker.patch("git_syncd.system.AVATAR_DIR", tmp_path / "avatars")
    mock_get = mocker.patch("httpx.get", return_value=MagicMock(content=b"jpeg"))

    first = system.cached_avatar("https://www.gravatar.com/avatar/abc.jpg")
    second = system.cached_avatar("https://www.gravatar.com/avatar/abc.jpg")

    assert first == second
    assert first.read_bytes() == b"jpeg"
    mock_get.assert_called_once()


def test_cached_avatar_offline(tmp_path: Path, mocker: MagicMock) -> None:
    mocker.patch("git_syncd.system.AVATAR_DIR", tmp_path / "avatars")
    mocker.patch("httpx.get", side_effect=httpx.ConnectError("offline"))

    assert system.cached_avatar("https://www.gravatar.com/avatar/abc.jpg") is None


def test_linux_notify_shows_avatar_icon(tmp_path: Path, mocker: MagicMock) -> None:
    """Verifies that the author's avatar is passed to notify-send."""
    icon_file = tmp_path / "abc.jpg"
    mocker.patch("git_syncd.system.cached_avatar", return_value=icon_file)
    mock_run = mocker.patch("subprocess.run")

    system.LinuxStrategy().notify(
        "alice fix bug", "notes", icon="https://www.gravatar.com/avatar/abc.jpg"
    )

    assert mock_run.call_args[0][0] == [
        "notify-send",
        "--app-name",
        "git-syncd",
        "--icon",
        str(icon_file),
        "alice fix bug",
        "notes",
    ]


def test_linux_notify_without_avatar_download(mocker: MagicMock) -> None:
    mocker.patch("git_syncd.system.cached_avatar", return_value=None)
    mock_run = mocker.patch("subprocess.run")

    system.LinuxStrategy().notify("title", "body", icon="https://example.com/a.jpg")

    assert "--icon" not in mock_run.call_args[0][0]
