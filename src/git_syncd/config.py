import logging
import re
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    LOCAL_CONFIG_NAME,
)

logger = logging.getLogger(APP_NAME)


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '500ms', '2s', '1hr') to seconds."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value < 0:
            raise ValueError(f"Negative duration '{value}'")
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(ms|s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "ms": 0.001,
        "s": 1,
        "sec": 1,
        "m": 60,
        "min": 60,
        "h": 3600,
        "hr": 3600,
    }
    return num * multiplier[unit]


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        remote_name (str): The git remote to fetch from and push to.
        branch (str): The remote branch merged during a pull. Empty means the
            upstream of the current branch.
    """

    remote_name: str = "origin"
    branch: str = ""


@dataclass
class SyncConfig:
    """Sync engine settings.

    Attributes:
        debounce_delay (float): Quiet seconds required before local changes
            are published.
        fetch_interval (float): Seconds between periodic pulls.
        command_timeout (float): Upper bound in seconds for any git command.
        monitor_only (bool): Observe local changes without committing them.
        notify_local_commits (bool): Show a notification for each local commit.
    """

    debounce_delay: float = 2.0
    fetch_interval: float = 10.0
    command_timeout: float = 120.0
    monitor_only: bool = False
    notify_local_commits: bool = True


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class FilesConfig:
    """File management settings.

    Attributes:
        ignore (list[str]): Extra patterns the change filter drops.
        manage_gitignore (bool): Whether clone may seed .gitignore.
    """

    ignore: list[str] = field(default_factory=list)
    manage_gitignore: bool = True


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        sync (SyncConfig): Sync engine timing and behavior.
        limits (LimitsConfig): Resource limits.
        files (FilesConfig): File handling settings.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    files: FilesConfig = field(default_factory=FilesConfig)

    # Cache for the base global configuration
    _global_cache: "Config | None" = None

    @classmethod
    def load(cls, repo_path: Path | None = None) -> "Config":
        """Loads and merges configuration from defaults, global, and local sources.

        Args:
            repo_path (Path | None): The repository root to search for local config.

        Returns:
            Config: The fully merged configuration object.
        """
        # 1. Load or Retrieve Global Config
        if cls._global_cache is None:
            instance = cls()
            if CONFIG_FILE.exists():
                instance._merge_from_file(CONFIG_FILE)
            cls._global_cache = instance

        # Start with a copy of the cached global config. Sections are copied
        # too so local overrides never leak back into the cache.
        base = cls._global_cache
        instance = replace(
            base,
            core=replace(base.core),
            sync=replace(base.sync),
            limits=replace(base.limits),
            files=replace(base.files, ignore=list(base.files.ignore)),
        )

        # 2. Load Local Config (if applicable)
        if repo_path:
            local_toml = repo_path / LOCAL_CONFIG_NAME
            pyproject = repo_path / "pyproject.toml"

            if local_toml.exists():
                instance._merge_from_file(local_toml)
            elif pyproject.exists():
                instance._merge_from_file(pyproject, section="tool.syncd")

        return instance

    def _merge_from_file(self, path: Path, section: str | None = None) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
            section (str | None): Dot-separated section path (e.g., 'tool.syncd').
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if section:
                for key in section.split("."):
                    data = data.get(key, {})

            if not data:
                return

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "sync" in data:
                self.sync = self._update_dataclass("sync", self.sync, data["sync"])
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )
            if "files" in data:
                # Extract ignore list to prevent it from being overwritten during dataclass update
                new_ignores = data["files"].pop("ignore", [])
                self.files = self._update_dataclass("files", self.files, data["files"])
                if new_ignores:
                    self.files.ignore.extend(new_ignores)
                    self.files.ignore = list(dict.fromkeys(self.files.ignore))

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except Exception as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        # 1. Catch and warn about typos / unknown keys
        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        # 2. Process valid keys
        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                # Route specific keys through our parsers
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["debounce_delay", "fetch_interval", "command_timeout"]:
                    filtered_updates[k] = parse_time(v)
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)
