import logging
import os
import subprocess
from pathlib import Path

from .constants import APP_NAME, DEFAULT_IGNORES, GIT_DIR

logger = logging.getLogger(APP_NAME)


class GitCommandError(RuntimeError):
    """Raised when a git command exits non-zero or exceeds its time limit.

    Attributes:
        args_list (list[str]): The git arguments that were executed.
        returncode (int | None): The exit code, or None if the command timed out.
        stderr (str): Captured standard error output.
        stdout (str): Captured standard output. Merge conflicts are reported here.
    """

    def __init__(
        self,
        args: list[str],
        returncode: int | None,
        stderr: str = "",
        stdout: str = "",
    ):
        self.args_list = list(args)
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        self.stdout = (stdout or "").strip()
        if returncode is None:
            detail = "timed out"
        else:
            detail = f"exit {returncode}"
        message = f"git {' '.join(self.args_list)} ({detail})"
        if reason := self.stderr or self.stdout:
            message += f": {reason}"
        super().__init__(message)

    @property
    def command(self) -> str:
        """The subcommand that failed (e.g., 'push'), skipping `-c` overrides."""
        args = iter(self.args_list)
        for arg in args:
            if arg == "-c":
                next(args, None)
            elif not arg.startswith("-"):
                return arg
        return ""


def _base_env() -> dict[str, str]:
    """Builds the environment every git invocation runs with.

    The C locale keeps status and merge output in the English wording the
    parsers expect. Terminal and SSH prompts are disabled so a background
    command fails instead of waiting for input.
    """
    env = os.environ.copy()
    env["LC_ALL"] = "C"
    env["GIT_TERMINAL_PROMPT"] = "0"
    env.setdefault("GIT_SSH_COMMAND", "ssh -o BatchMode=yes")
    return env


class GitRepo:
    """A wrapper around the Git command-line interface for a specific repository.

    Each method is a blocking call into git that returns the command's trimmed
    standard output. Instances are owned by a single repository worker; the
    class itself does no locking.

    Attributes:
        path (Path): The file system path to the repository root.
        timeout (float | None): Upper bound in seconds for each command.
    """

    def __init__(self, path: Path, timeout: float | None = None):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            timeout (float | None): Seconds after which a command is killed.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.timeout = timeout
        if not (self.path / GIT_DIR).exists():
            raise ValueError(f"Not a git repository: {self.path}")

    def _run(
        self, args: list[str], capture: bool = True, env: dict | None = None
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): A list of arguments to pass to the git command.
            capture (bool, optional):   Whether to capture and return stdout.
                                        Defaults to True.
            env (Optional[dict], optional): Extra environment variables layered
                                            over the base environment.

        Returns:
            str:    The stripped stdout of the command if capture is True,
                    otherwise an empty string.

        Raises:
            GitCommandError: If the command returns a non-zero exit code or
                             exceeds the configured timeout.
        """
        run_env = _base_env()
        if env:
            run_env.update(env)
        try:
            res = subprocess.run(
                ["git", *args],
                cwd=self.path,
                capture_output=capture,
                text=True,
                check=True,
                env=run_env,
                timeout=self.timeout,
            )
            return res.stdout.strip() if capture else ""
        except subprocess.CalledProcessError as e:
            raise GitCommandError(
                args, e.returncode, e.stderr or "", e.stdout or ""
            ) from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(args, None) from e

    @classmethod
    def clone(
        cls,
        url: str,
        path: Path,
        timeout: float | None = None,
        seed_gitignore: bool = True,
    ) -> "GitRepo":
        """Clones a remote repository and seeds its ignore file.

        Args:
            url (str): The remote URL to clone.
            path (Path): The destination directory.
            timeout (float | None): Upper bound in seconds for the clone.
            seed_gitignore (bool): Whether to append editor swap/backup patterns
                                   to .gitignore.

        Returns:
            GitRepo: A wrapper for the freshly cloned repository.

        Raises:
            GitCommandError: If git fails to clone.
        """
        args = ["clone", url, str(path)]
        try:
            subprocess.run(
                ["git", *args],
                capture_output=True,
                text=True,
                check=True,
                env=_base_env(),
                timeout=timeout,
            )
        except subprocess.CalledProcessError as e:
            raise GitCommandError(
                args, e.returncode, e.stderr or "", e.stdout or ""
            ) from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(args, None) from e

        if seed_gitignore:
            seed_ignore_file(path)
        return cls(path, timeout=timeout)

    def config_get(self, key: str) -> str | None:
        """Reads a git config value.

        Args:
            key (str): The config key (e.g., 'user.name').

        Returns:
            str | None: The value, or None if the key is unset or empty.
        """
        try:
            return self._run(["config", "--get", key]) or None
        except GitCommandError as e:
            logger.debug(f"config --get {key} failed in {self.path.name}: {e}")
            return None

    def status(self) -> str:
        """Returns the long-form `git status` report.

        `--long` overrides a user's `status.short`, and paths are printed
        unescaped so non-ASCII names reach commit messages intact.
        """
        return self._run(["-c", "core.quotePath=false", "status", "--long"])

    def status_porcelain(self) -> list[str]:
        """Returns the porcelain (machine-readable) status lines."""
        output = self._run(["status", "--porcelain"])
        return output.splitlines() if output else []

    def add_all(self) -> None:
        """
        Stages all changes (modified, deleted, and untracked files)
        in the working directory.
        """
        self._run(["add", "--all"])

    def commit(self, message: str) -> None:
        """Creates a new commit with the provided message.

        Args:
            message (str): The commit message.
        """
        self._run(["commit", "-m", message])

    def fetch(self, remote: str = "origin") -> None:
        """Downloads objects and refs from a remote.

        Args:
            remote (str): The remote to fetch from.
        """
        self._run(["fetch", remote])

    def merge(self, ref: str) -> str:
        """Merges a ref into the current branch without opening an editor.

        Args:
            ref (str): The ref to merge (e.g., 'origin/master').

        Returns:
            str: git's report of the merge.
        """
        return self._run(["merge", "--no-edit", ref])

    def merge_abort(self) -> None:
        """Abandons a conflicted merge and restores the pre-merge state."""
        self._run(["merge", "--abort"])

    def push(self, remote: str = "origin") -> None:
        """Pushes the current branch to a remote.

        Args:
            remote (str): The remote to push to.
        """
        self._run(["push", remote, "HEAD"])

    def rev_parse_head(self) -> str | None:
        """Resolves the current HEAD commit.

        Returns:
            Optional[str]:  The full SHA-1 hash,
                            or None if the repository has no commits yet.
        """
        try:
            return self._run(["rev-list", "--max-count=1", "HEAD"]) or None
        except GitCommandError as e:
            logger.debug(f"rev-list HEAD failed in {self.path.name}: {e}")
            return None

    def log(self, fmt: str, count: int = 1) -> str:
        """Formats the most recent commits.

        Args:
            fmt (str): A `git log --format` string.
            count (int): How many commits to include.

        Returns:
            str: The formatted log output.
        """
        return self._run(["log", f"-{count}", f"--format={fmt}"])

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The name of the current branch (empty when detached).
        """
        return self._run(["branch", "--show-current"])

    def tracking_branch(self) -> str | None:
        """Resolves the upstream of the current branch (e.g., 'origin/main').

        Returns:
            str | None: The upstream ref, or None if none is configured.
        """
        try:
            return (
                self._run(["rev-parse", "--abbrev-ref", "--symbolic-full-name", "@{u}"])
                or None
            )
        except GitCommandError as e:
            logger.debug(f"No upstream for {self.path.name}: {e}")
            return None


def seed_ignore_file(path: Path, patterns: list[str] | None = None) -> None:
    """Appends missing patterns to a repository's .gitignore.

    Args:
        path (Path): The repository root.
        patterns (list[str] | None): Patterns to ensure. Defaults to the editor
                                     swap/backup patterns.
    """
    patterns = DEFAULT_IGNORES if patterns is None else patterns
    gitignore = path / ".gitignore"

    existing: set[str] = set()
    content = ""
    if gitignore.exists():
        content = gitignore.read_text()
        existing = {line.strip() for line in content.splitlines()}

    missing = [p for p in patterns if p not in existing]
    if not missing:
        return

    with open(gitignore, "a") as f:
        if content and not content.endswith("\n"):
            f.write("\n")
        for pattern in missing:
            f.write(f"{pattern}\n")
