"""Local working-tree collaborator.

Reads repository context (GitHub remote, current branch, HEAD) and builds
change sets from ``git status`` style comparisons for the tracked and
staged modes. Nothing here writes to the local repository.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Optional, Tuple

from git import Repo
from git.exc import InvalidGitRepositoryError, NoSuchPathError

from .content import ChangeSet
from .errors import GhsyncError
from .models import RepositoryRef
from .observability import log_debug

DEFAULT_GITHUB_HOST = "github.com"


class LocalRepositoryError(GhsyncError):
    """Raised when the local repository cannot be opened or inspected."""


def _strip_repo_suffix(value: str) -> str:
    value = value.strip().rstrip("/")
    if value.endswith(".git"):
        value = value[:-4]
    return value


def parse_remote_url(remote: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """Split a git remote URL into (host, "owner/name").

    Handles ``git@github.com:org/repo.git``, ``https://github.com/org/repo``
    and ``ssh://git@github.com/org/repo``; returns (None, None) otherwise.
    """
    if not remote:
        return None, None
    remote = _strip_repo_suffix(remote)

    if "://" in remote:
        rest = remote.split("://", 1)[1]
        host, _, path = rest.partition("/")
    elif "@" in remote and ":" in remote:
        host, _, path = remote.partition(":")
    else:
        return None, None

    host = host.rsplit("@", 1)[-1].split(":", 1)[0]
    path = path.strip("/")
    if not host or path.count("/") != 1:
        return None, None
    return host, path


def github_actions_context(
    env: Optional[Mapping[str, str]] = None,
) -> Tuple[Optional[RepositoryRef], str]:
    """Repository and branch from the GitHub Actions environment.

    The branch is ``GITHUB_HEAD_REF`` for pull-request events, otherwise
    ``GITHUB_REF_NAME`` when the triggering ref is a branch.
    """
    env = os.environ if env is None else env
    repository: Optional[RepositoryRef] = None
    slug = env.get("GITHUB_REPOSITORY", "")
    if slug:
        try:
            repository = RepositoryRef.from_slug(slug)
        except ValueError:
            repository = None

    branch = env.get("GITHUB_HEAD_REF", "")
    if not branch and env.get("GITHUB_REF_TYPE", "branch") == "branch":
        branch = env.get("GITHUB_REF_NAME", "")
    return repository, branch


class LocalRepository:
    """Read-only view over a local clone."""

    def __init__(self, path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None):
        self.env = os.environ if env is None else env
        try:
            self.repo = Repo(str(path or Path.cwd()), search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as exc:
            raise LocalRepositoryError(f"not a git repository: {path or Path.cwd()}") from exc
        if self.repo.bare:
            raise LocalRepositoryError("bare repositories have no working tree")
        self.root = Path(self.repo.working_tree_dir)

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    def remote_url(self) -> str:
        """``GIT_URL`` if set, else the ``origin`` (or first) remote's URL."""
        if self.env.get("GIT_URL"):
            return self.env["GIT_URL"]
        remotes = self.repo.remotes
        if not remotes:
            return ""
        remote = next((r for r in remotes if r.name == "origin"), remotes[0])
        return next(iter(remote.urls), "")

    def github_repository(self, host: str = DEFAULT_GITHUB_HOST) -> Optional[RepositoryRef]:
        remote_host, slug = parse_remote_url(self.remote_url())
        if not slug or remote_host != host:
            return None
        return RepositoryRef.from_slug(slug)

    def current_branch(self) -> str:
        """``GIT_BRANCH`` if set, else the checked-out branch ("" when detached)."""
        if self.env.get("GIT_BRANCH"):
            return self.env["GIT_BRANCH"]
        if self.repo.head.is_detached:
            return ""
        return self.repo.active_branch.name

    def head_sha(self) -> str:
        try:
            return self.repo.head.commit.hexsha
        except ValueError:
            # No commits yet
            return ""

    def is_clean(self) -> bool:
        return not self.repo.is_dirty(index=True, working_tree=True, untracked_files=False)

    # ------------------------------------------------------------------
    # Change sets
    # ------------------------------------------------------------------

    def _read_worktree(self, path: str) -> Optional[bytes]:
        file_path = self.root / path
        if not file_path.is_file():
            return None
        return file_path.read_bytes()

    def tracked(self) -> ChangeSet:
        """Changes to tracked files between HEAD and the working tree, staged or not."""
        changes = ChangeSet()
        if not self.head_sha():
            for _stage, blob in self.repo.index.iter_blobs():
                content = self._read_worktree(blob.path)
                if content is not None:
                    changes.add(blob.path, content)
            return changes

        for item in self.repo.head.commit.diff(None):
            if item.change_type == "D":
                changes.delete(item.a_path)
                continue
            if item.change_type == "R":
                changes.delete(item.a_path)
            content = self._read_worktree(item.b_path)
            if content is None:
                changes.delete(item.b_path)
            else:
                changes.add(item.b_path, content)
        log_debug("tracked changes", changes=repr(changes))
        return changes

    def staged(self) -> ChangeSet:
        """Changes recorded in the index relative to HEAD; content comes from the index."""
        changes = ChangeSet()
        if not self.head_sha():
            for _stage, blob in self.repo.index.iter_blobs():
                changes.add(blob.path, blob.data_stream.read())
            return changes

        for item in self.repo.head.commit.diff():
            if item.change_type == "D":
                changes.delete(item.a_path)
                continue
            if item.change_type == "R":
                changes.delete(item.a_path)
            changes.add(item.b_path, item.b_blob.data_stream.read())
        log_debug("staged changes", changes=repr(changes))
        return changes
