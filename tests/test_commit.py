"""Tests for the commit applier."""

from __future__ import annotations

import pytest

from ghsync.commit import CommitApplier
from ghsync.content import ContentDiff
from ghsync.errors import ConcurrencyConflictError


class TestApply:
    def test_empty_diff_is_noop(self, remote):
        head = remote.head("main")
        result = CommitApplier(remote).apply("main", head, ContentDiff(), "msg")
        assert result.sha == head
        assert not result.updated
        assert remote.mutations == []

    def test_allow_empty_commits_anyway(self, remote):
        head = remote.head("main")
        result = CommitApplier(remote).apply("main", head, ContentDiff(), "msg", allow_empty=True)
        assert result.updated
        assert result.sha != head
        assert remote.head("main") == result.sha

    def test_commit_applies_additions_and_deletions(self, remote):
        head = remote.head("main")
        diff = ContentDiff(additions={"new.txt": b"new"}, deletions=["docs/guide.md"])
        result = CommitApplier(remote).apply("main", head, diff, "Add new\n\nbody text")
        assert result.updated
        tree = remote.tree(result.sha)
        assert tree["new.txt"] == b"new"
        assert "docs/guide.md" not in tree
        assert remote.commits[result.sha]["parent"] == head
        name, args = remote.mutations[-1]
        assert name == "create_commit_on_branch"
        assert args[4:] == ("Add new", "body text")

    def test_dry_run_reports_would_update(self, remote):
        head = remote.head("main")
        diff = ContentDiff(additions={"new.txt": b"new"})
        result = CommitApplier(remote).apply("main", head, diff, "msg", dry_run=True)
        assert result.updated
        assert result.sha == head
        assert remote.mutations == []

    def test_moved_branch_raises_concurrency_conflict(self, remote):
        stale = remote.head("main")
        remote.add_branch("main", sha=remote.add_commit({"x": b"x"}, parent=stale))
        diff = ContentDiff(additions={"new.txt": b"new"})
        with pytest.raises(ConcurrencyConflictError) as excinfo:
            CommitApplier(remote).apply("main", stale, diff, "msg")
        assert excinfo.value.expected_sha == stale
        # Exactly one attempt; no retry
        assert [m[0] for m in remote.mutations] == ["create_commit_on_branch"]
