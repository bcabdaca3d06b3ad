import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path

from .config import Config
from .constants import (
    APP_NAME,
    DEFAULT_USER_EMAIL,
    DEFAULT_USER_NAME,
    GIT_DIR,
    GIT_LOCK_FILES,
    MONITOR_ONLY_MARKER,
)
from .git_wrapper import GitRepo

logger = logging.getLogger(APP_NAME)

# Seconds an index.lock may exist before it is treated as abandoned.
STALE_LOCK_SECONDS = 24 * 3600

_URL_HOST = re.compile(r"^[a-z][a-z0-9+.-]*://(?:[^@/]*@)?(?P<host>\[[^\]]+\]|[^:/]+)")
_SCP_HOST = re.compile(r"^(?:[^@/]+@)?(?P<host>[^:/]+):")


def parse_remote_host(url: str | None) -> str | None:
    """Extracts the hostname from a git remote URL.

    Supports URL forms (ssh://git@host/repo, https://host:443/repo) and the
    scp-like SSH form (git@host:user/repo).

    Args:
        url (str | None): The remote URL.

    Returns:
        str | None: The hostname (e.g., 'github.com') or None for local paths
        and unparseable input.
    """
    if not url:
        return None
    url = url.strip()

    if "://" in url:
        if url.lower().startswith("file://"):
            return None
        match = _URL_HOST.match(url.lower())
        return match.group("host").strip("[]") if match else None
    if match := _SCP_HOST.match(url):
        return match.group("host")
    return None


def is_repo_busy(repo_path: Path) -> bool:
    """Determines if a repository is currently locked by a Git operation.

    Args:
        repo_path (Path): The path to the repository.

    Returns:
        bool: True if a merge/rebase is in progress or a live index.lock exists.
    """
    git_dir = repo_path / GIT_DIR

    for f in GIT_LOCK_FILES:
        if (git_dir / f).exists():
            return True

    lock_file = git_dir / "index.lock"
    if lock_file.exists():
        try:
            age = time.time() - lock_file.stat().st_mtime
            if age > STALE_LOCK_SECONDS:
                logger.warning(
                    f"Stale lock detected in {repo_path.name} "
                    f"({age / 3600:.1f}h old). Run 'rm {lock_file}' to fix."
                )
        except OSError:
            return False  # File vanished (race resolved).
        return True

    return False


@dataclass
class Repository:
    """Identity and mutable state of one watched repository.

    The path never changes over the object's life; the head revision and the
    remote URL may.

    Attributes:
        path (Path): The repository root.
        name (str): Display name (the path leaf).
        remote_url (str): URL of the configured remote, or '' if none.
        host (str | None): Host parsed from the remote URL.
        user_name (str): Committer name from git config.
        user_email (str): Committer email from git config.
        current_hash (str | None): Last known HEAD commit.
        monitor_only_config (bool): Monitor-only mode requested by config.
    """

    path: Path
    name: str
    remote_url: str = ""
    host: str | None = None
    user_name: str = DEFAULT_USER_NAME
    user_email: str = DEFAULT_USER_EMAIL
    current_hash: str | None = None
    monitor_only_config: bool = False

    @classmethod
    def load(cls, path: Path, git: GitRepo, config: Config) -> "Repository":
        """Reads the repository's identity.

        Missing config values fall back to sentinels rather than failing.

        Args:
            path (Path): The repository root.
            git (GitRepo): The command channel for this repository.
            config (Config): The merged configuration.

        Returns:
            Repository: The populated repository.
        """
        remote_url = git.config_get(f"remote.{config.core.remote_name}.url") or ""
        return cls(
            path=path,
            name=path.name,
            remote_url=remote_url,
            host=parse_remote_host(remote_url),
            user_name=git.config_get("user.name") or DEFAULT_USER_NAME,
            user_email=git.config_get("user.email") or DEFAULT_USER_EMAIL,
            current_hash=git.rev_parse_head(),
            monitor_only_config=config.sync.monitor_only,
        )

    @property
    def monitor_marker(self) -> Path:
        """Path of the marker file written by `git syncd pause`."""
        return self.path / GIT_DIR / MONITOR_ONLY_MARKER

    @property
    def monitor_only(self) -> bool:
        """Whether local changes are observed but never committed."""
        return self.monitor_only_config or self.monitor_marker.exists()
