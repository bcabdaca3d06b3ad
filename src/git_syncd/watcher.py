import fnmatch
import logging
import os
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from .constants import APP_NAME, GIT_DIR, SWAP_SUFFIXES

logger = logging.getLogger(APP_NAME)

_RELEVANT_EVENTS = {
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MOVED,
}


def should_ignore(
    relative_path: str,
    root: Path | None = None,
    extra_patterns: Iterable[str] = (),
) -> bool:
    """Decides whether a changed path is noise.

    Dotfiles, lock files, anything under .git or a hidden directory, editor
    swap files and directories are ignored, as is anything matching one of
    `extra_patterns`.

    Args:
        relative_path (str): The path relative to the repository root.
        root (Path | None): The repository root, used for the directory check.
        extra_patterns (Iterable[str]): Additional fnmatch patterns.

    Returns:
        bool: True if the change should not trigger a sync.
    """
    rel = relative_path.replace(os.sep, "/")
    if not rel or rel.startswith("."):
        return True
    if ".lock" in rel:
        return True

    parts = rel.split("/")
    if GIT_DIR in parts or any(part.startswith(".") for part in parts):
        return True
    if rel.endswith(SWAP_SUFFIXES):
        return True
    if root is not None and (root / rel).is_dir():
        return True

    name = parts[-1]
    for pattern in extra_patterns:
        if fnmatch.fnmatch(rel, pattern) or fnmatch.fnmatch(name, pattern):
            return True
    return False


class RepoEventHandler(FileSystemEventHandler):
    """Forwards watchdog events to a RepoWatcher."""

    def __init__(self, watcher: "RepoWatcher"):
        super().__init__()
        self._watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        self._watcher.handle(event.event_type, os.fsdecode(event.src_path))
        if event.event_type == EVENT_TYPE_MOVED:
            self._watcher.handle(event.event_type, os.fsdecode(event.dest_path))


class RepoWatcher:
    """Watches a repository tree and reports qualifying changes.

    Delivery can be suspended for a scope (see `suspended`), which the sync
    engine uses while a merge rewrites the working tree.

    Attributes:
        root (Path): The watched repository root.
    """

    def __init__(
        self,
        root: Path,
        on_change: Callable[[str, str], None],
        ignore_patterns: Iterable[str] = (),
    ):
        """Initializes the watcher.

        Args:
            root (Path): The repository root.
            on_change (Callable[[str, str], None]): Called with (event kind,
                relative path) for every change that passes the filter.
            ignore_patterns (Iterable[str]): Extra patterns for the filter.
        """
        self.root = root
        self._on_change = on_change
        self._ignore_patterns = list(ignore_patterns)
        self._lock = threading.Lock()
        self._suspensions = 0
        self._observer: Observer | None = None

    @property
    def enabled(self) -> bool:
        with self._lock:
            return self._suspensions == 0

    def handle(self, kind: str, path: str) -> None:
        """Filters one raw event and forwards it if it qualifies."""
        if not self.enabled:
            return
        try:
            rel = os.path.relpath(path, self.root)
        except ValueError:
            return
        if rel.startswith(".."):
            return
        if should_ignore(rel, self.root, self._ignore_patterns):
            logger.debug(f"IGNORED {self.root.name}: {kind} '{rel}'")
            return
        self._on_change(kind, rel)

    @contextmanager
    def suspended(self) -> Iterator[None]:
        """Drops all events for the duration of the block."""
        with self._lock:
            self._suspensions += 1
        try:
            yield
        finally:
            with self._lock:
                self._suspensions -= 1

    def start(self) -> None:
        """Starts the watchdog observer thread."""
        if self._observer is not None:
            return
        observer = Observer()
        observer.schedule(RepoEventHandler(self), str(self.root), recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer

    def stop(self) -> None:
        """Stops the observer and waits for its thread to exit."""
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
