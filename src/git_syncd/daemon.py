import atexit
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from pathlib import Path
from types import FrameType

from .config import Config
from .constants import (
    APP_NAME,
    LOG_FILE,
    PID_FILE,
    REGISTRY_FILE,
)
from .sync import Notification
from .system import get_registered_repos, get_system, write_registry
from .worker import PUBLISH, PULL, RepoAgent

SYSTEM = get_system()

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

# Seconds to wait for an in-flight cycle when shutting down.
SHUTDOWN_GRACE = 30.0


def notify_user(notification: Notification, repo_path: Path) -> None:
    """Shows a sync notification on the desktop."""
    SYSTEM.notify(
        notification.title,
        repo_path.name,
        action_path=repo_path if notification.show_action else None,
        icon=notification.avatar,
    )


def prune_registry(original_path_str: str) -> None:
    """Removes a missing repository path from the registry file.

    Args:
        original_path_str (str): The path string to remove.
    """
    if not REGISTRY_FILE.exists():
        return

    target = original_path_str.strip()
    try:
        remaining = [p for p in get_registered_repos() if str(p) != target]
        write_registry(remaining)
    except OSError as e:
        logger.error(f"ERROR: Could not prune registry. {e}")
        return

    repo_name = Path(original_path_str).name
    logger.info(f"PRUNED: {original_path_str} removed from registry.")
    SYSTEM.notify("Sync Stopped", f"Removed missing repo: {repo_name}")


def build_agents(repos: list[Path]) -> list[RepoAgent]:
    """Creates one agent per usable repository.

    Missing paths are pruned from the registry; repositories that fail to
    load are logged and skipped so the others still sync.
    """
    agents = []
    for repo_path in dict.fromkeys(repos):
        if not repo_path.exists():
            prune_registry(str(repo_path))
            continue
        try:
            agents.append(RepoAgent(repo_path.resolve(), notifier=notify_user))
        except Exception as e:
            logger.error(f"LOAD ERROR {repo_path.name}: {e}")
    return agents


def run_once(repo_path: Path) -> None:
    """Runs one publish and one pull for a repository on the calling thread.

    Args:
        repo_path (Path): The repository root.
    """
    agent = RepoAgent(repo_path, notifier=notify_user)
    for action in (PUBLISH, PULL):
        result = agent.worker.process(action)
        logger.info(f"{action.upper()} {agent.repo.name}: {result.value}")


def setup_logging(interactive: bool, max_log_size: int | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to file/stderr
                            with rotation enabled.
        max_log_size (int | None): Bytes before the log file rotates.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to stderr (captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        # In daemon mode, rotate logs to file.
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=max_log_size or Config.load().limits.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def write_pid_file() -> None:
    """Records the daemon PID and removes it again at exit."""
    try:
        with open(PID_FILE, "w") as f:
            f.write(str(os.getpid()))
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")


def main() -> None:
    """The long-running daemon.

    Starts one agent per registered repository and blocks until SIGTERM or
    SIGINT, then stops every agent, letting in-flight cycles finish.
    """
    setup_logging(interactive=False)

    repos = get_registered_repos()
    if not repos:
        logger.info("Registry empty. Run 'git-syncd' in a repo to register it.")
        return

    write_pid_file()

    shutdown = threading.Event()

    def stop_handler(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown.set()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    agents = build_agents(repos)
    if not agents:
        logger.warning("No usable repositories registered.")
        return

    for agent in agents:
        try:
            agent.start()
        except Exception:
            logger.exception(f"START ERROR {agent.repo.name}")

    while not shutdown.wait(1.0):
        pass

    for agent in agents:
        agent.stop(timeout=SHUTDOWN_GRACE)
    logger.info("Daemon stopped.")


if __name__ == "__main__":
    main()
