"""Git Syncd: Continuous folder synchronization through git.

This package provides the command-line interface, background daemon, and the
sync engine that watches working trees, commits settled bursts of changes, and
keeps them merged with their remotes.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    debounce,
    git_wrapper,
    repository,
    service,
    summary,
    sync,
    system,
    watcher,
    worker,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "debounce",
    "git_wrapper",
    "repository",
    "service",
    "summary",
    "sync",
    "system",
    "watcher",
    "worker",
]
