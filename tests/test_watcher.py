"""Tests for the change filter and the repository watcher."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest
from watchdog.events import (
    DirCreatedEvent,
    FileClosedEvent,
    FileCreatedEvent,
    FileModifiedEvent,
    FileMovedEvent,
)

from git_syncd.watcher import RepoEventHandler, RepoWatcher, should_ignore


@pytest.mark.parametrize(
    "path",
    [
        ".hidden",
        ".git/index",
        "sub/.git/HEAD",
        "docs/.cache/x.txt",
        "package.lock",
        "index.lock.tmp",
        ".notes.txt.swp",
        "notes.txt.swp",
        "notes.txt.swo",
        "notes.txt~",
        "",
    ],
)
def test_should_ignore_noise(path: str) -> None:
    assert should_ignore(path) is True


@pytest.mark.parametrize("path", ["notes.txt", "docs/readme.md", "a/b/c.py", "swp.txt"])
def test_should_ignore_keeps_regular_files(path: str) -> None:
    assert should_ignore(path) is False


def test_should_ignore_existing_directory(tmp_path: Path) -> None:
    (tmp_path / "photos").mkdir()
    assert should_ignore("photos", tmp_path) is True
    assert should_ignore("photos.txt", tmp_path) is False


def test_should_ignore_extra_patterns() -> None:
    assert should_ignore("build/out.o", extra_patterns=["*.o"]) is True
    assert should_ignore("build/out.o", extra_patterns=["build/*"]) is True
    assert should_ignore("src/out.c", extra_patterns=["*.o"]) is False


def test_handle_forwards_qualifying_changes(tmp_path: Path) -> None:
    on_change = MagicMock()
    watcher = RepoWatcher(tmp_path, on_change)

    watcher.handle("created", str(tmp_path / "notes.txt"))

    on_change.assert_called_once_with("created", "notes.txt")


def test_handle_drops_filtered_changes(tmp_path: Path) -> None:
    """Verifies that ignored paths never reach the change callback."""
    on_change = MagicMock()
    watcher = RepoWatcher(tmp_path, on_change, ignore_patterns=["*.log"])

    watcher.handle("modified", str(tmp_path / ".git" / "index"))
    watcher.handle("modified", str(tmp_path / "notes.txt.swp"))
    watcher.handle("modified", str(tmp_path / "debug.log"))
    watcher.handle("modified", str(tmp_path.parent / "elsewhere.txt"))

    on_change.assert_not_called()


def test_suspended_drops_events_and_resumes(tmp_path: Path) -> None:
    """Verifies the scoped suspend used during merges."""
    on_change = MagicMock()
    watcher = RepoWatcher(tmp_path, on_change)

    with watcher.suspended():
        assert watcher.enabled is False
        watcher.handle("modified", str(tmp_path / "merged.txt"))

    assert watcher.enabled is True
    on_change.assert_not_called()

    watcher.handle("modified", str(tmp_path / "edited.txt"))
    on_change.assert_called_once_with("modified", "edited.txt")


def test_suspended_resumes_after_exception(tmp_path: Path) -> None:
    watcher = RepoWatcher(tmp_path, MagicMock())

    with pytest.raises(RuntimeError):
        with watcher.suspended():
            raise RuntimeError("merge failed")

    assert watcher.enabled is True


def test_event_handler_translates_watchdog_events(tmp_path: Path) -> None:
    """Verifies which watchdog events are forwarded."""
    watcher = MagicMock()
    handler = RepoEventHandler(watcher)

    handler.dispatch(FileCreatedEvent(str(tmp_path / "a.txt")))
    handler.dispatch(FileModifiedEvent(str(tmp_path / "b.txt")))
    handler.dispatch(FileMovedEvent(str(tmp_path / "c.txt"), str(tmp_path / "d.txt")))
    handler.dispatch(DirCreatedEvent(str(tmp_path / "dir")))
    handler.dispatch(FileClosedEvent(str(tmp_path / "a.txt")))

    assert [c.args for c in watcher.handle.call_args_list] == [
        ("created", str(tmp_path / "a.txt")),
        ("modified", str(tmp_path / "b.txt")),
        ("moved", str(tmp_path / "c.txt")),
        ("moved", str(tmp_path / "d.txt")),
    ]
