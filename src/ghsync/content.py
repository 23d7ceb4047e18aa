"""Content diff engine.

Desired content is assembled into a ``ChangeSet`` (path -> bytes plus a set
of paths to delete, last one given wins) and compared against the remote
tree using git blob hashes, so only files whose content actually differs are
sent in the commit.
"""

from __future__ import annotations

import hashlib
import posixpath
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from .observability import log_debug


def blob_hash(content: bytes) -> str:
    """Return the git blob object id for content (``sha1("blob <len>\\0" + content)``)."""
    header = b"blob %d\x00" % len(content)
    return hashlib.sha1(header + content).hexdigest()


def clean_path(path: str) -> str:
    """Normalize a repository-relative path to a clean, slash-separated form."""
    cleaned = posixpath.normpath(path.replace("\\", "/"))
    return cleaned.lstrip("/") if cleaned not in (".", "/") else cleaned


class ChangeSet:
    """Desired additions and deletions, keyed by clean repository path.

    An explicit update of a path cancels a pending deletion of the same path
    and vice versa, so the two sides never overlap.
    """

    def __init__(self) -> None:
        self._additions: Dict[str, bytes] = {}
        self._deletions: Set[str] = set()

    def add(self, path: str, content: bytes) -> None:
        path = clean_path(path)
        self._additions[path] = content
        self._deletions.discard(path)

    def delete(self, path: str) -> None:
        path = clean_path(path)
        self._deletions.add(path)
        self._additions.pop(path, None)

    def merge(self, other: "ChangeSet") -> None:
        """Apply another change set on top of this one."""
        for path, content in other.additions.items():
            self.add(path, content)
        for path in other.deletions:
            self.delete(path)

    @property
    def additions(self) -> Dict[str, bytes]:
        return dict(self._additions)

    @property
    def deletions(self) -> Set[str]:
        return set(self._deletions)

    def __len__(self) -> int:
        return len(self._additions) + len(self._deletions)

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return (
            f"ChangeSet(additions={sorted(self._additions)}, "
            f"deletions={sorted(self._deletions)})"
        )

    @classmethod
    def from_items(
        cls,
        additions: Optional[Dict[str, bytes]] = None,
        deletions: Optional[Iterable[str]] = None,
    ) -> "ChangeSet":
        changes = cls()
        for path, content in (additions or {}).items():
            changes.add(path, content)
        for path in deletions or ():
            changes.delete(path)
        return changes


@dataclass
class ContentDiff:
    """The part of a change set that differs from the remote tree."""

    additions: Dict[str, bytes] = field(default_factory=dict)
    deletions: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.additions and not self.deletions


def compute_diff(client, changes: ChangeSet, revision: str, force: bool = False) -> ContentDiff:
    """Reduce ``changes`` to the files that differ at ``revision``.

    Args:
        client: Transport exposing ``get_file_hash(revision, path)``
        changes: Desired additions and deletions
        revision: Branch name or commit SHA to compare against
        force: Include every candidate regardless of hash equality

    Returns:
        ContentDiff with additions whose blob hash differs (or is absent
        remotely) and deletions of paths that currently exist remotely
    """
    diff = ContentDiff()

    for path, content in sorted(changes.additions.items()):
        local_hash = blob_hash(content)
        remote_hash = client.get_file_hash(revision, path)
        if force or local_hash != remote_hash:
            diff.additions[path] = content
            log_debug("queued for addition", path=path, local=local_hash, remote=remote_hash)
        else:
            log_debug("unchanged on target: skipping addition", path=path, remote=remote_hash)

    for path in sorted(changes.deletions):
        remote_hash = client.get_file_hash(revision, path)
        if force or remote_hash:
            diff.deletions.append(path)
            log_debug("queued for deletion", path=path)
        else:
            log_debug("absent on target: skipping deletion", path=path)

    return diff
