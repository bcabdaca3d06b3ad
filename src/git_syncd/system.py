import hashlib
import logging
import os
import subprocess
import sys
import threading
from pathlib import Path

import httpx

from .constants import APP_NAME, AVATAR_DIR, REGISTRY_FILE

logger = logging.getLogger(APP_NAME)


def get_registered_repos() -> list[Path]:
    """Reads the registry file and returns a list of registered repository paths."""
    if not REGISTRY_FILE.exists():
        return []
    with open(REGISTRY_FILE, "r") as f:
        return [Path(line.strip()) for line in f if line.strip()]


def write_registry(paths: list[Path]) -> None:
    """Atomically replaces the registry contents, dropping duplicates."""
    REGISTRY_FILE.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = REGISTRY_FILE.with_suffix(".tmp")
    unique = list(dict.fromkeys(str(p) for p in paths))
    try:
        with open(tmp_file, "w") as f:
            for line in unique:
                f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, REGISTRY_FILE)
    finally:
        if tmp_file.exists():
            tmp_file.unlink()


def register_repo(path: Path) -> bool:
    """Adds a repository to the registry.

    Returns:
        bool: False if it was already registered.
    """
    repos = get_registered_repos()
    if path in repos:
        return False
    write_registry([*repos, path])
    return True


def unregister_repo(path: Path) -> bool:
    """Removes a repository from the registry.

    Returns:
        bool: False if it was not registered.
    """
    repos = get_registered_repos()
    if path not in repos:
        return False
    write_registry([p for p in repos if p != path])
    return True


AVATAR_TIMEOUT = 5.0


def cached_avatar(url: str) -> Path | None:
    """Downloads an avatar image once and returns its local copy.

    Args:
        url (str): The image URL.

    Returns:
        Path | None: The cached file, or None if the download failed.
    """
    digest = hashlib.md5(url.encode("utf-8")).hexdigest()
    target = AVATAR_DIR / f"{digest}.jpg"
    if target.exists():
        return target
    try:
        response = httpx.get(url, timeout=AVATAR_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.debug(f"Avatar download failed for {url}: {e}")
        return None
    AVATAR_DIR.mkdir(parents=True, exist_ok=True)
    target.write_bytes(response.content)
    return target


class SystemStrategy:
    """Base class defining the interface for desktop interactions."""

    def notify(
        self,
        title: str,
        message: str = "",
        action_path: Path | None = None,
        icon: str | None = None,
    ) -> None:
        """Sends a desktop notification.

        Args:
            title (str): The notification title.
            message (str): The notification body text.
            action_path (Path | None): If given, offer to open this folder.
            icon (str | None): Image URL or file shown beside the message.
        """
        pass

    def open_folder(self, path: Path) -> None:
        """Opens a folder in the platform file manager."""
        pass


class MacOSStrategy(SystemStrategy):
    """System strategy implementation for macOS."""

    def notify(
        self,
        title: str,
        message: str = "",
        action_path: Path | None = None,
        icon: str | None = None,
    ) -> None:
        """Sends a notification using AppleScript."""
        # Sanitize quotes to prevent AppleScript syntax errors.
        clean_title = title.replace('"', "'")
        clean_msg = message.replace('"', "'")
        script = f'display notification "{clean_msg}" with title "{clean_title}"'
        try:
            subprocess.run(["osascript", "-e", script], stderr=subprocess.DEVNULL)
        except OSError as e:
            logger.debug(f"Notification failed: {e}")

    def open_folder(self, path: Path) -> None:
        subprocess.Popen(["open", str(path)])


class LinuxStrategy(SystemStrategy):
    """System strategy implementation for Linux."""

    def notify(
        self,
        title: str,
        message: str = "",
        action_path: Path | None = None,
        icon: str | None = None,
    ) -> None:
        """Sends a notification using `notify-send`.

        With an action path, the "Open Folder" button is offered and the call
        waits for the user's answer on a background thread.
        """
        cmd = ["notify-send", "--app-name", APP_NAME]
        if icon and (icon_path := self._resolve_icon(icon)):
            cmd += ["--icon", str(icon_path)]
        cmd += [title, message]
        if action_path is None:
            try:
                subprocess.run(cmd, stderr=subprocess.DEVNULL)
            except FileNotFoundError:
                pass
            return

        cmd[1:1] = ["--action=open=Open Folder", "--wait"]
        threading.Thread(
            target=self._await_action, args=(cmd, action_path), daemon=True
        ).start()

    def _resolve_icon(self, icon: str) -> Path | None:
        if icon.startswith(("http://", "https://")):
            return cached_avatar(icon)
        return Path(icon)

    def _await_action(self, cmd: list[str], action_path: Path) -> None:
        try:
            res = subprocess.run(
                cmd, stdout=subprocess.PIPE, stderr=subprocess.DEVNULL, text=True
            )
        except FileNotFoundError:
            return
        if res.stdout.strip() == "open":
            self.open_folder(action_path)

    def open_folder(self, path: Path) -> None:
        try:
            subprocess.Popen(["xdg-open", str(path)], stderr=subprocess.DEVNULL)
        except FileNotFoundError:
            logger.warning("xdg-open not found; cannot open folder.")


def get_system() -> SystemStrategy:
    """Factory function to retrieve the platform-specific system strategy.

    Returns:
        SystemStrategy: An instance of MacOSStrategy, LinuxStrategy, or the base
        SystemStrategy depending on the operating system.
    """
    if sys.platform == "darwin":
        return MacOSStrategy()
    elif sys.platform.startswith("linux"):
        return LinuxStrategy()
    else:
        return SystemStrategy()
