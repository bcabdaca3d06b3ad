import shutil
import subprocess
import sys
from pathlib import Path

from rich.console import Console

from .constants import APP_LABEL

console = Console()

DAEMON_EXECUTABLE = "git-syncd-daemon"


def get_executable() -> str:
    """Locates the installed daemon executable in the system path.

    Returns:
        str: The absolute path to the 'git-syncd-daemon' executable.

    Raises:
        SystemExit: If the executable is not found in the PATH.
    """
    exe = shutil.which(DAEMON_EXECUTABLE)
    if not exe:
        console.print(
            f"[bold red]ERROR:[/bold red] Could not find '{DAEMON_EXECUTABLE}'. "
            "Ensure the package is installed."
        )
        sys.exit(1)
    return exe


def get_unit_path() -> Path:
    """Resolves the systemd user unit path.

    Raises:
        NotImplementedError: If called on macOS, as Homebrew manages services there.
    """
    if sys.platform.startswith("linux"):
        return Path.home() / f".config/systemd/user/{APP_LABEL}.service"

    raise NotImplementedError("Service installation is managed by Homebrew on macOS.")


def render_unit(executable: str) -> str:
    """Builds the systemd unit for the long-running daemon."""
    return f"""[Unit]
Description=Git Syncd Folder Sync Daemon
After=network-online.target

[Service]
ExecStart={executable}
Restart=on-failure
RestartSec=10

[Install]
WantedBy=default.target
"""


def install_linux(unit_path: Path, executable: str) -> None:
    """Writes, enables and starts the systemd user service.

    Args:
        unit_path (Path): The target path for the .service file.
        executable (str): The path to the daemon executable.
    """
    unit_path.parent.mkdir(parents=True, exist_ok=True)
    unit_path.write_text(render_unit(executable))

    subprocess.run(["systemctl", "--user", "daemon-reload"], check=True)
    subprocess.run(
        ["systemctl", "--user", "enable", "--now", unit_path.name], check=True
    )
    console.print(
        f"[bold green]SUCCESS:[/bold green] Syncd service active (Linux).\n"
        f"Check status: systemctl --user status {unit_path.name}"
    )


def install() -> None:
    """Installs the background daemon service.

    On Linux, this generates a systemd unit. On macOS, it instructs the user to
    use Homebrew services.
    """
    if sys.platform == "darwin":
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] On macOS, the background service "
            "is managed by Homebrew."
        )
        console.print("To start the service, run:")
        console.print("   [green]brew services start git-syncd[/green]\n")
        return

    exe = get_executable()
    install_linux(get_unit_path(), exe)


def uninstall() -> None:
    """Removes the background daemon service."""
    if sys.platform == "darwin":
        console.print(
            "\n[bold yellow]NOTE:[/bold yellow] On macOS, the background service "
            "is managed by Homebrew."
        )
        console.print("To stop the service, run:")
        console.print("   [green]brew services stop git-syncd[/green]\n")
        return

    path = get_unit_path()
    subprocess.run(
        ["systemctl", "--user", "disable", "--now", path.name],
        stderr=subprocess.DEVNULL,
    )
    if path.exists():
        path.unlink()
    subprocess.run(["systemctl", "--user", "daemon-reload"])

    console.print("[bold green]SUCCESS:[/bold green] Service uninstalled.")


def is_service_enabled() -> bool:
    """Reports whether the systemd user service is enabled."""
    if not sys.platform.startswith("linux"):
        return False
    try:
        res = subprocess.run(
            ["systemctl", "--user", "is-enabled", f"{APP_LABEL}.service"],
            capture_output=True,
            text=True,
        )
    except FileNotFoundError:
        return False
    return res.returncode == 0
