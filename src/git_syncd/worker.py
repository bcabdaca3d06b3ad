import logging
import queue
import threading
import time
from collections.abc import Callable
from pathlib import Path

from .config import Config
from .constants import APP_NAME
from .debounce import Debouncer
from .git_wrapper import GitRepo
from .repository import Repository
from .sync import Notification, SyncEngine, SyncResult
from .watcher import RepoWatcher

logger = logging.getLogger(APP_NAME)

PUBLISH = "publish"
PULL = "pull"
_STOP = "stop"


class SyncWorker(threading.Thread):
    """The single command loop of one repository.

    Settles and periodic pulls arrive as messages on a queue and run one at a
    time, so git commands never interleave on the same working tree. A message
    that is already waiting in the queue is not queued twice; one that arrives
    while the same kind of cycle is running is queued behind it.

    When `fetch_interval` passes without any pull, the worker runs one.
    """

    def __init__(
        self,
        engine: SyncEngine,
        fetch_interval: float,
        name: str = "",
        clock: Callable[[], float] = time.monotonic,
    ):
        super().__init__(name=f"{APP_NAME}-{name or engine.repo.name}", daemon=True)
        self.engine = engine
        self.fetch_interval = fetch_interval
        self._clock = clock
        self._queue: queue.Queue[str] = queue.Queue()
        self._waiting: set[str] = set()
        self._lock = threading.Lock()
        self._stopping = threading.Event()

    def submit(self, action: str) -> bool:
        """Queues a cycle.

        Args:
            action (str): PUBLISH or PULL.

        Returns:
            bool: False if the same cycle was already waiting.
        """
        if action not in (PUBLISH, PULL):
            raise ValueError(f"Unknown sync action '{action}'")
        with self._lock:
            if action in self._waiting:
                return False
            self._waiting.add(action)
        self._queue.put(action)
        return True

    def stop(self) -> None:
        """Asks the loop to exit once the running cycle (if any) completes."""
        self._stopping.set()
        self._queue.put(_STOP)

    def process(self, action: str) -> SyncResult:
        """Runs one cycle on the calling thread, containing any failure."""
        try:
            if action == PUBLISH:
                return self.engine.publish_local_changes()
            return self.engine.pull()
        except Exception:
            logger.exception(f"LOOP ERROR {self.engine.repo.name}: {action} failed")
            return SyncResult.FAILED

    def _next_timeout(self, deadline: float | None) -> float | None:
        if deadline is None:
            return None
        return max(0.0, deadline - self._clock())

    def _new_deadline(self) -> float | None:
        if self.fetch_interval <= 0:
            return None
        return self._clock() + self.fetch_interval

    def run(self) -> None:
        deadline = self._new_deadline()
        while not self._stopping.is_set():
            try:
                action = self._queue.get(timeout=self._next_timeout(deadline))
            except queue.Empty:
                action = PULL
            else:
                if action == _STOP:
                    break
                with self._lock:
                    self._waiting.discard(action)

            if self._stopping.is_set():
                break
            self.process(action)
            # A publish ends with a pull too.
            deadline = self._new_deadline()


class RepoAgent:
    """Wires the watcher, debouncer, engine and worker of one repository."""

    def __init__(
        self,
        path: Path,
        config: Config | None = None,
        notifier: Callable[[Notification, Path], None] | None = None,
    ):
        self.config = config or Config.load(path)
        self.git = GitRepo(path, timeout=self.config.sync.command_timeout)
        self.repo = Repository.load(path, self.git, self.config)
        self._notifier = notifier

        self.watcher = RepoWatcher(path, self.on_file_activity, self.config.files.ignore)
        self.engine = SyncEngine(
            self.repo,
            self.git,
            self.config,
            suspend_events=self.watcher.suspended,
            notify=self._notify,
        )
        self.worker = SyncWorker(self.engine, self.config.sync.fetch_interval)
        self.debouncer = Debouncer(
            self.config.sync.debounce_delay, self.on_settled, name=self.repo.name
        )

    def on_file_activity(self, kind: str, rel_path: str) -> None:
        """Receives a filtered change and arms the debouncer."""
        if self.repo.monitor_only:
            logger.debug(f"EVENT {self.repo.name}: {kind} '{rel_path}' (monitor only)")
            return
        logger.debug(f"EVENT {self.repo.name}: {kind} '{rel_path}'")
        self.debouncer.trigger()

    def on_settled(self) -> None:
        self.worker.submit(PUBLISH)

    def _notify(self, notification: Notification) -> None:
        if self._notifier is not None:
            self._notifier(notification, self.repo.path)

    def start(self) -> None:
        """Starts syncing, publishing whatever changed while stopped."""
        self.worker.start()
        self.watcher.start()
        if not self.repo.monitor_only:
            self.worker.submit(PUBLISH)
        logger.info(
            f"WATCHING {self.repo.name}: {self.repo.path} "
            f"(remote: {self.repo.host or 'local'})"
        )

    def stop(self, timeout: float | None = None) -> None:
        """Stops watching and waits for the running cycle to finish."""
        self.watcher.stop()
        self.debouncer.cancel()
        self.worker.stop()
        if self.worker.is_alive():
            self.worker.join(timeout)
