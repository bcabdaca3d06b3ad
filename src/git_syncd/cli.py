import argparse
import logging
import os
import subprocess
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon, service, system
from .config import CONFIG_FILE, Config
from .constants import (
    APP_NAME,
    DEFAULT_IGNORES,
    GIT_DIR,
    LOG_FILE,
    MONITOR_ONLY_MARKER,
    PID_FILE,
)
from .git_wrapper import GitCommandError, GitRepo, seed_ignore_file
from .repository import Repository

logger = logging.getLogger(APP_NAME)
console = Console()


def _require_repo() -> Path:
    """Returns the current directory, exiting if it is not a git repository."""
    cwd = Path.cwd()
    if not (cwd / GIT_DIR).exists():
        console.print("[bold red]Not a git repository.[/bold red]")
        sys.exit(1)
    return cwd


def _daemon_running() -> bool:
    if not PID_FILE.exists():
        return False
    try:
        pid = int(PID_FILE.read_text().strip())
        os.kill(pid, 0)
        return True
    except (ValueError, OSError):
        return False


def open_config() -> None:
    """Opens the global configuration file in the system default editor."""
    if not CONFIG_FILE.exists():
        CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
        with open(CONFIG_FILE, "w") as f:
            f.write(
                "# Git Syncd Configuration\n\n"
                "[sync]\n"
                '# debounce_delay = "2s"\n'
                '# fetch_interval = "10s"\n'
            )

    editor = os.environ.get("EDITOR")
    if not editor:
        if sys.platform == "darwin":
            editor = "open"
        else:
            editor = "nano"

    console.print(f"Opening [cyan]{CONFIG_FILE}[/cyan]...")

    try:
        subprocess.run([editor, str(CONFIG_FILE)])
    except OSError as e:
        console.print(f"[red]Could not open editor: {e}[/red]")


def show_status() -> None:
    """Displays the daemon state and the state of the current repository."""
    if _daemon_running():
        status_text, status_style = "Active (Running)", "bold green"
    elif service.is_service_enabled():
        status_text, status_style = "Enabled (Not Running)", "yellow"
    else:
        status_text, status_style = "Stopped", "bold red"

    system_content = Text()
    system_content.append("Daemon: ", style="bold")
    system_content.append(status_text, style=status_style)
    console.print(Panel(system_content, title="System Status", expand=False))

    cwd = Path.cwd()
    if not (cwd / GIT_DIR).exists():
        count = len(system.get_registered_repos())
        console.print(f"[dim]Watching {count} repositories.[/dim]")
        return

    if cwd not in system.get_registered_repos():
        console.print(
            Panel(
                "This repository is not synced by Git Syncd.\n"
                "Run [bold cyan]git syncd[/bold cyan] to enable syncing.",
                title="Repository Status",
                expand=False,
                border_style="yellow",
            )
        )
        return

    conf = Config.load(cwd)
    git = GitRepo(cwd, timeout=conf.sync.command_timeout)
    repo = Repository.load(cwd, git, conf)

    try:
        last_commit = git.log("%cr", 1) or "Never"
    except GitCommandError as e:
        logger.debug(f"Failed to retrieve last commit time: {e}")
        last_commit = "Never"

    repo_content = Text()
    repo_content.append(f"Remote:      {repo.host or 'local'}\n")
    repo_content.append(f"Identity:    {repo.user_name} <{repo.user_email}>\n")
    repo_content.append(f"Head:        {(repo.current_hash or 'none')[:10]}\n")
    repo_content.append(f"Last Commit: {last_commit}\n", style="dim")
    repo_content.append(f"Pending:     {len(git.status_porcelain())} files changed\n")
    if repo.monitor_only:
        repo_content.append("Mode:        MONITOR ONLY", style="bold yellow")
    else:
        repo_content.append("Mode:        Active", style="green")

    console.print(Panel(repo_content, title="Repository Status", expand=False))


def list_repos() -> None:
    """Lists all repositories registered with Git Syncd and their status."""
    repos = system.get_registered_repos()
    if not repos:
        console.print("[yellow]Registry is empty.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Status")
    table.add_column("Remote")
    table.add_column("Last Commit", justify="right", style="dim")

    for path in repos:
        display_path = str(path).replace(str(Path.home()), "~")
        remote = "-"
        last_commit = "-"

        if not path.exists():
            status_text, status_style = "Missing", "red"
        elif (path / GIT_DIR / MONITOR_ONLY_MARKER).exists():
            status_text, status_style = "Monitor only", "yellow"
        else:
            status_text, status_style = "Active", "green"

        if path.exists():
            try:
                git = GitRepo(path)
                remote = git.config_get("remote.origin.url") or "-"
                last_commit = git.log("%cr", 1) or "-"
            except (ValueError, GitCommandError) as e:
                logger.debug(f"Failed to retrieve info for {path}: {e}")
                status_text, status_style = "Error", "bold red"

        table.add_row(
            display_path,
            f"[{status_style}]{status_text}[/{status_style}]",
            remote,
            last_commit,
        )

    console.print(table)


def unregister_repo() -> None:
    """Removes the current working directory from the registry."""
    cwd = Path.cwd()
    if system.unregister_repo(cwd):
        console.print(f"✔ Unregistered: [cyan]{cwd}[/cyan]", style="green")
    else:
        console.print(
            f"Current path not registered: [cyan]{cwd}[/cyan]", style="yellow"
        )


def tail_log() -> None:
    """Follows the daemon log file in real-time."""
    if not LOG_FILE.exists():
        console.print(f"[red]No log file found yet at {LOG_FILE}.[/red]")
        return

    console.print(f"Tailing [bold cyan]{LOG_FILE}[/bold cyan] (Ctrl+C to stop)...")
    try:
        subprocess.run(["tail", "-n", "1000", "-f", str(LOG_FILE)])
    except KeyboardInterrupt:
        console.print("\nStopped.", style="dim")


def set_monitor_only(enabled: bool) -> None:
    """Toggles monitor-only mode for the current repository.

    Args:
        enabled (bool): True to stop auto-committing, False to resume.
    """
    cwd = _require_repo()
    marker = cwd / GIT_DIR / MONITOR_ONLY_MARKER
    if enabled:
        marker.touch()
        console.print(
            "Syncd paused. Local changes are watched but not committed.",
            style="bold yellow",
        )
    else:
        marker.unlink(missing_ok=True)
        console.print("Syncd resumed. Local changes are published.", style="bold green")


def run_now() -> None:
    """Publishes local changes and pulls once for the current repository."""
    cwd = _require_repo()
    daemon.setup_logging(interactive=True)
    with console.status(f"[bold blue]Syncing {cwd.name}...[/bold blue]", spinner="dots"):
        daemon.run_once(cwd)


def clone_repo(url: str, target: str | None) -> None:
    """Clones a remote repository and registers it.

    Args:
        url (str): The remote URL.
        target (str | None): Destination directory. Defaults to the URL's
                             repository name in the current directory.
    """
    if target:
        dest = Path(target)
    else:
        dest = Path(url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1])
        dest = dest.with_suffix("") if dest.suffix == ".git" else dest
    dest = dest.resolve()
    conf = Config.load()

    try:
        with console.status(f"Cloning [cyan]{url}[/cyan]...", spinner="dots"):
            GitRepo.clone(
                url,
                dest,
                timeout=conf.sync.command_timeout,
                seed_gitignore=conf.files.manage_gitignore,
            )
    except GitCommandError as e:
        console.print(f"[bold red]CLONE ERROR:[/bold red] {e}")
        sys.exit(1)

    system.register_repo(dest)
    console.print(f"[bold green]✔ Cloned and registered:[/bold green] [cyan]{dest}[/cyan]")


def setup_repo() -> None:
    """Registers the current repository for syncing.

    Seeds the editor swap-file patterns into .gitignore (unless disabled) and
    checks that pushing works non-interactively.
    """
    cwd = _require_repo()
    config = Config.load(cwd)
    git = GitRepo(cwd, timeout=config.sync.command_timeout)

    if config.files.manage_gitignore:
        console.print("Checking .gitignore for editor swap files...", style="dim")
        seed_ignore_file(cwd, DEFAULT_IGNORES)
    else:
        console.print(
            "Skipping .gitignore management (manage_gitignore=false).", style="dim"
        )

    if system.register_repo(cwd):
        console.print(f"Registered: [cyan]{cwd}[/cyan]", style="green")
    else:
        console.print("Already registered.", style="dim")

    console.print("\n[bold green]✔ Syncd Active.[/bold green]")

    repo = Repository.load(cwd, git, config)
    if not repo.remote_url:
        console.print(
            f"⚠ WARNING: No '{config.core.remote_name}' remote configured. "
            "Changes will be committed locally only.",
            style="bold yellow",
        )
        return

    try:
        console.print(f"Verifying git access to {repo.host}...", style="dim")
        git._run(["push", "--dry-run", config.core.remote_name, "HEAD"])
    except GitCommandError as e:
        logger.debug(f"Dry-run push verification failed: {e}")
        console.print(
            f"⚠ WARNING: Git push failed. Ensure you have "
            f"SSH keys set up or credentials cached.\n"
            f"[dim]Diagnostic info: {e}[/dim]",
            style="bold yellow",
        )


class SyncdHelpFormatter(argparse.HelpFormatter):
    """Groups the subcommands into logical categories in the help output."""

    def _format_action(self, action: argparse.Action) -> str:
        if isinstance(action, argparse._SubParsersAction):
            parts = []

            groups = {
                "Sync": ["now", "clone"],
                "Repository Control": [
                    "status",
                    "config",
                    "list",
                    "pause",
                    "resume",
                    "remove",
                ],
                "Maintenance": ["log"],
                "Service": ["install-service", "uninstall-service"],
                "General": ["help"],
            }

            subactions = list(self._iter_indented_subactions(action))

            for group_name, commands in groups.items():
                group_actions = [a for a in subactions if a.dest in commands]
                if not group_actions:
                    continue

                parts.append(f"\n  {group_name}:\n")

                self._indent()
                for subaction in group_actions:
                    parts.append(self._format_action(subaction))
                self._dedent()

            return self._join_parts(parts)

        return super()._format_action(action)


def show_config_reference() -> None:
    """Displays a formatted table of all available configuration options."""
    table = Table(title="Git Syncd Configuration Schema", show_lines=True)
    table.add_column("Section", style="cyan", justify="right")
    table.add_column("Key", style="green")
    table.add_column("Type", style="dim")
    table.add_column("Default", style="yellow")
    table.add_column("Description")

    table.add_row(
        "core", "remote_name", "str", '"origin"', "The remote to fetch from and push to."
    )
    table.add_row(
        "",
        "branch",
        "str",
        '""',
        "Remote branch merged on pull. Empty uses the current branch's upstream.",
    )

    table.add_row(
        "sync",
        "debounce_delay",
        "float | str",
        '"2s"',
        "Quiet time after the last change before committing (e.g., '500ms').",
    )
    table.add_row(
        "",
        "fetch_interval",
        "float | str",
        '"10s"',
        "Time between periodic pulls. 0 disables them.",
    )
    table.add_row(
        "",
        "command_timeout",
        "float | str",
        '"2m"',
        "Maximum time any git command may run before it is killed.",
    )
    table.add_row(
        "",
        "monitor_only",
        "bool",
        "false",
        "Watch local changes but never commit them.",
    )
    table.add_row(
        "",
        "notify_local_commits",
        "bool",
        "true",
        "Show a notification for each automatic commit.",
    )

    table.add_row(
        "files",
        "ignore",
        "list",
        "[]",
        "Extra glob patterns that never trigger a sync.",
    )
    table.add_row(
        "",
        "manage_gitignore",
        "bool",
        "true",
        "Allow seeding editor swap-file rules into .gitignore.",
    )

    table.add_row(
        "limits",
        "max_log_size",
        "int | str",
        '"5mb"',
        "Max size for log files before rotation (e.g., '5mb', '1gb').",
    )

    console.print(table)


def main() -> None:
    """Main entry point for the Git Syncd CLI."""
    parser = argparse.ArgumentParser(
        usage=argparse.SUPPRESS,
        formatter_class=SyncdHelpFormatter,
        add_help=False,
    )
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help=argparse.SUPPRESS,
    )

    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("install-service", help="Install the background daemon")
    subparsers.add_parser("uninstall-service", help="Uninstall the background daemon")
    subparsers.add_parser("now", help="Publish and pull the current repo (one-off)")

    clone_parser = subparsers.add_parser("clone", help="Clone a remote and sync it")
    clone_parser.add_argument("url", help="Remote repository URL")
    clone_parser.add_argument("path", nargs="?", help="Destination directory")

    subparsers.add_parser("pause", help="Watch without committing (monitor only)")
    subparsers.add_parser("resume", help="Resume committing local changes")
    subparsers.add_parser("status", help="Show daemon and repo status")
    subparsers.add_parser("list", help="List registered repositories")
    subparsers.add_parser("log", help="Tail the daemon log file")
    subparsers.add_parser("help", help="Show this help message")
    subparsers.add_parser("remove", help="Stop syncing current repo")

    config_parser = subparsers.add_parser(
        "config", help="Open global config file or view options"
    )
    config_parser.add_argument(
        "--list",
        "-l",
        action="store_true",
        help="List all available configuration options and their descriptions",
    )

    args = parser.parse_args()

    if args.command == "install-service":
        with console.status("Installing background service...", spinner="dots"):
            service.install()
        return
    elif args.command == "uninstall-service":
        with console.status("Uninstalling service...", spinner="dots"):
            service.uninstall()
        return
    elif args.command == "help":
        parser.print_help()
        return
    elif args.command == "now":
        run_now()
        return
    elif args.command == "clone":
        clone_repo(args.url, args.path)
        return
    elif args.command == "pause":
        set_monitor_only(True)
        return
    elif args.command == "resume":
        set_monitor_only(False)
        return
    elif args.command == "status":
        show_status()
        return
    elif args.command == "list":
        list_repos()
        return
    elif args.command == "log":
        tail_log()
        return
    elif args.command == "remove":
        unregister_repo()
        return
    elif args.command == "config":
        if getattr(args, "list", False):
            show_config_reference()
        else:
            open_config()
        return

    setup_repo()


if __name__ == "__main__":
    main()
