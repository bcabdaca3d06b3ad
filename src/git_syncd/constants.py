import os
from pathlib import Path

"""Global constants and configuration path definitions for Git Syncd.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and the default values used by the sync engine.
"""

# --- Identity ---
APP_NAME = "git-syncd"
"""str: The human-readable application name."""

APP_LABEL = "com.jacksonferguson.gitsyncd"
"""str: The reverse-DNS style application identifier."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-syncd"
"""Path: The directory for runtime state data (logs, registry)."""

# Ensure state directory exists immediately upon module import.
STATE_DIR.mkdir(parents=True, exist_ok=True)

REGISTRY_FILE = STATE_DIR / "registry"
"""Path: The file path storing the list of registered repositories."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

AVATAR_DIR = STATE_DIR / "avatars"
"""Path: Cache of downloaded author avatars shown in notifications."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-syncd"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = "syncd.toml"
"""str: Per-repository configuration file name."""

MONITOR_ONLY_MARKER = "syncd_monitor_only"
"""str: Marker file inside .git that puts a repository in monitor-only mode."""

# --- Identity Defaults ---
DEFAULT_USER_NAME = "Anonymous"
DEFAULT_USER_EMAIL = "not.set@git-scm.com"

# --- Git / Logic Constants ---
GIT_DIR = ".git"

DEFAULT_IGNORES = [
    "*~",
    ".*.sw?",
]
"""list[str]: Editor swap/backup patterns seeded into .gitignore on clone."""

SWAP_SUFFIXES = (".swp", ".swo", "~")
"""tuple[str, ...]: File suffixes written by editors while a file is open."""

GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""
list[str]: Git internal files indicating an
active state (merge/rebase) that blocks sync cycles.
"""

UP_TO_DATE_MARKERS = ("Already up to date", "Already up-to-date")
"""tuple[str, ...]: Merge output meaning nothing new was brought in."""
