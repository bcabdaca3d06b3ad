"""Commit message synthesis from git status reports.

The status report is parsed textually. `parse_status` is the only function
that knows the report's wording; everything else works on `PendingChangeSet`.
"""

import re
from dataclasses import dataclass, field

# Entries in `git status` long format, with or without the legacy '#' prefix.
_ENTRY = re.compile(r"^#?\s*(new file|modified|deleted|renamed):\s+(.+?)\s*$")

# Sections whose entries were not staged and must not be summarized.
_SKIPPED_SECTIONS = ("Changes not staged for commit:", "Unmerged paths:")
_STAGED_SECTION = "Changes to be committed:"


@dataclass
class PendingChangeSet:
    """Staged changes grouped by kind, in the order git reported them.

    Attributes:
        added (list[str]): New files.
        modified (list[str]): Edited files.
        deleted (list[str]): Removed files.
        renamed (list[tuple[str, str]]): (old, new) path pairs.
    """

    added: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    renamed: list[tuple[str, str]] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.deleted or self.renamed)

    def counts(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "deleted": len(self.deleted),
            "renamed": len(self.renamed),
        }


def _unquote(path: str) -> str:
    """Undoes git's C-style quoting, including octal-escaped UTF-8 bytes."""
    if len(path) < 2 or not path[0] == path[-1] == '"':
        return path
    raw = path[1:-1].encode("utf-8")
    decoded = raw.decode("unicode_escape").encode("latin-1")
    return decoded.decode("utf-8", errors="replace")


def parse_status(report: str) -> PendingChangeSet:
    """Parses a long-form `git status` report.

    Args:
        report (str): The text printed by `git status`.

    Returns:
        PendingChangeSet: The staged entries found. Unrecognised lines are
        skipped, so garbage input yields an empty set.
    """
    changes = PendingChangeSet()
    skipping = False

    for raw in report.splitlines():
        line = raw.rstrip()
        header = line.lstrip("#").strip()
        if header in _SKIPPED_SECTIONS:
            skipping = True
            continue
        if header == _STAGED_SECTION or header == "Untracked files:":
            skipping = False
            continue
        if skipping:
            continue

        match = _ENTRY.match(line)
        if not match:
            continue

        kind, path = match.group(1), match.group(2)
        if kind == "new file":
            changes.added.append(_unquote(path))
        elif kind == "modified":
            changes.modified.append(_unquote(path))
        elif kind == "deleted":
            changes.deleted.append(_unquote(path))
        else:
            old, sep, new = path.partition(" -> ")
            if not sep:
                continue
            changes.renamed.append((_unquote(old), _unquote(new)))

    return changes


def describe(changes: PendingChangeSet) -> str:
    """Builds a one-line summary from the dominant kind of change.

    Kinds are checked in the order added, modified, deleted, renamed; only the
    first non-empty one is described.

    Returns:
        str: e.g. "added 'notes.txt' and 2 more.", or '' if nothing changed.
    """
    if changes.added:
        verb, count, subject = "added", len(changes.added), f"'{changes.added[0]}'"
    elif changes.modified:
        verb, count, subject = (
            "edited",
            len(changes.modified),
            f"'{changes.modified[0]}'",
        )
    elif changes.deleted:
        verb, count, subject = (
            "deleted",
            len(changes.deleted),
            f"'{changes.deleted[0]}'",
        )
    elif changes.renamed:
        old, new = changes.renamed[0]
        verb, count, subject = "renamed", len(changes.renamed), f"'{old}' to '{new}'"
    else:
        return ""

    if count > 1:
        return f"{verb} {subject} and {count - 1} more."
    return f"{verb} {subject}."


def synthesize(report: str) -> str:
    """Derives a commit message from a `git status` report.

    Args:
        report (str): The text printed by `git status`.

    Returns:
        str: The summary line, or '' when there is nothing to commit.
    """
    return describe(parse_status(report))
