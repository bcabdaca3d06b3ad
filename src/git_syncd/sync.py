import contextlib
import hashlib
import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum

from .config import Config
from .constants import APP_NAME, GIT_DIR, UP_TO_DATE_MARKERS
from .git_wrapper import GitCommandError, GitRepo
from .repository import Repository, is_repo_busy
from .summary import synthesize

logger = logging.getLogger(APP_NAME)


class SyncResult(Enum):
    """Outcome of one sync cycle."""

    NOOP = "noop"
    COMMITTED = "committed"
    UPDATED = "updated"
    FAILED = "failed"


def avatar_url(email: str, size: int = 48) -> str:
    """Returns the Gravatar image URL for an email address."""
    digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
    return f"https://www.gravatar.com/avatar/{digest}.jpg?s={size}&d=identicon"


@dataclass(frozen=True)
class Notification:
    """A change worth telling the user about.

    Attributes:
        author (str): Name of the commit author.
        email (str): Email of the commit author.
        message (str): Commit subject line.
        show_action (bool): Whether to offer an "Open Folder" button.
    """

    author: str
    email: str
    message: str
    show_action: bool = True

    @property
    def title(self) -> str:
        return f"{self.author} {self.message}"

    @property
    def avatar(self) -> str:
        return avatar_url(self.email)


def is_up_to_date(merge_output: str) -> bool:
    """True if git's merge report says nothing was merged."""
    return any(marker in merge_output for marker in UP_TO_DATE_MARKERS)


class SyncEngine:
    """Runs the publish and pull cycles for one repository.

    The engine is not thread-safe: all calls for a repository must come from
    its single worker (see `worker.SyncWorker`).

    Attributes:
        repo (Repository): Identity and state of the repository.
        git (GitRepo): The repository's command channel.
        config (Config): The merged configuration.
    """

    def __init__(
        self,
        repo: Repository,
        git: GitRepo,
        config: Config,
        suspend_events: Callable[[], AbstractContextManager] | None = None,
        notify: Callable[[Notification], None] | None = None,
    ):
        """Initializes the engine.

        Args:
            repo (Repository): The repository being synced.
            git (GitRepo): Its command channel.
            config (Config): The merged configuration.
            suspend_events (Callable | None): Returns a context manager that
                silences file events for its duration. Used around merges.
            notify (Callable | None): Sink for user-facing notifications.
        """
        self.repo = repo
        self.git = git
        self.config = config
        self._suspend_events = suspend_events or contextlib.nullcontext
        self._notify = notify or (lambda _notification: None)

    @property
    def remote(self) -> str:
        return self.config.core.remote_name

    def merge_target(self) -> str:
        """Resolves the remote branch merged during a pull."""
        if self.config.core.branch:
            return f"{self.remote}/{self.config.core.branch}"
        if tracking := self.git.tracking_branch():
            return tracking
        return f"{self.remote}/{self.git.current_branch() or 'master'}"

    def publish_local_changes(self) -> SyncResult:
        """Stages, commits and publishes local changes.

        Order: add, status, commit, push, fetch, merge, push. The second push
        carries the commit if the first was rejected because the remote had
        moved on; a failed first push is therefore not fatal.

        Returns:
            SyncResult: NOOP if nothing was staged, COMMITTED on success,
            FAILED if a step failed.
        """
        name = self.repo.name
        if self.repo.monitor_only:
            logger.info(f"SKIPPED {name}: Monitor only.")
            return SyncResult.NOOP
        if is_repo_busy(self.repo.path):
            logger.info(f"SKIPPED {name}: Repository busy.")
            return SyncResult.NOOP

        try:
            logger.info(f"STAGE {name}: Staging changes...")
            self.git.add_all()
            message = synthesize(self.git.status())
            if not message:
                logger.info(f"NOOP {name}: Nothing to commit.")
                return SyncResult.NOOP

            logger.info(f"COMMIT {name}: {message}")
            self.git.commit(message)
            self.repo.current_hash = self.git.rev_parse_head()
            if self.config.sync.notify_local_commits:
                self._notify(
                    Notification(self.repo.user_name, self.repo.user_email, message)
                )
        except GitCommandError as e:
            logger.error(f"{e.command.upper()} ERROR {name}: {e}")
            return SyncResult.FAILED

        try:
            logger.info(f"PUSH {name}: Pushing changes...")
            self.git.push(self.remote)
        except GitCommandError as e:
            logger.warning(f"PUSH ERROR {name}: {e}. Retrying after fetch.")

        if self.pull() is SyncResult.FAILED:
            return SyncResult.FAILED

        try:
            self.git.push(self.remote)
        except GitCommandError as e:
            logger.error(f"PUSH ERROR {name}: {e}")
            return SyncResult.FAILED

        logger.info(f"SUCCESS {name}: Pushed.")
        return SyncResult.COMMITTED

    def pull(self) -> SyncResult:
        """Fetches from the remote and merges the tracking branch.

        File events are suspended while the merge writes to the working tree.

        Returns:
            SyncResult: UPDATED if the merge brought in changes, NOOP if
            already up to date, FAILED if fetch or merge failed.
        """
        name = self.repo.name
        if is_repo_busy(self.repo.path):
            logger.info(f"SKIPPED {name}: Repository busy.")
            return SyncResult.NOOP

        try:
            logger.debug(f"FETCH {name}: Fetching changes...")
            self.git.fetch(self.remote)
            target = self.merge_target()
        except GitCommandError as e:
            logger.error(f"{e.command.upper()} ERROR {name}: {e}")
            return SyncResult.FAILED

        with self._suspend_events():
            try:
                logger.debug(f"MERGE {name}: Merging {target}...")
                output = self.git.merge(target)
            except GitCommandError as e:
                logger.error(f"MERGE ERROR {name}: {e}")
                self._abort_merge()
                return SyncResult.FAILED

        if is_up_to_date(output):
            return SyncResult.NOOP

        self.repo.current_hash = self.git.rev_parse_head()
        logger.info(f"UPDATED {name}: Merged {target}.")
        try:
            notification = self.last_commit_notification()
        except GitCommandError as e:
            logger.warning(f"LOG ERROR {name}: {e}")
        else:
            self._notify(notification)
        return SyncResult.UPDATED

    def _abort_merge(self) -> None:
        """Backs out of a conflicted merge so the next cycle can retry.

        A merge left in progress marks the repository busy, which skips every
        later cycle.
        """
        if not (self.repo.path / GIT_DIR / "MERGE_HEAD").exists():
            return
        try:
            self.git.merge_abort()
            logger.warning(f"MERGE ABORTED {self.repo.name}: Will retry later.")
        except GitCommandError as e:
            logger.error(f"MERGE ERROR {self.repo.name}: Could not abort. {e}")

    def last_commit_notification(self) -> Notification:
        """Builds a notification from the most recent commit on HEAD."""
        lines = self.git.log("%an%n%ae%n%s", 1).splitlines()
        author, email, message = (lines + ["", "", ""])[:3]
        return Notification(author, email, message)
