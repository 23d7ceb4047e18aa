"""Tests for the generic ref updater."""

from __future__ import annotations

import pytest

from ghsync.errors import ImmutableRefSkip, InputValidationError, RefNameError, ResolutionError, TransportError
from ghsync.models import SourceRef, UpdateRefReport, UpdateRefRequest
from ghsync.updateref import RefUpdater


@pytest.fixture
def commits(remote):
    child = remote.head("main")
    parent = remote.commits[child]["parent"]
    return parent, child


def _update_many(remote, **kwargs):
    request = UpdateRefRequest(**kwargs)
    report = UpdateRefReport(repository=str(remote.repository), source=SourceRef(commitish=request.source))
    return RefUpdater(remote).update_many(request, report)


class TestUpdate:
    def test_absent_ref_is_created(self, remote, commits):
        _, child = commits
        report = RefUpdater(remote).update("refs/tags/stable", child, immutable=True)
        assert report.updated
        assert report.old_sha == ""
        assert remote.refs["refs/tags/stable"] == child

    def test_same_sha_is_noop(self, remote, commits):
        _, child = commits
        remote.add_tag("stable", child)
        report = RefUpdater(remote).update("refs/tags/stable", child)
        assert not report.updated
        assert report.old_sha == child
        assert remote.mutations == []

    def test_same_sha_force_refresh_is_not_updated(self, remote, commits):
        _, child = commits
        remote.add_tag("stable", child)
        report = RefUpdater(remote).update("refs/tags/stable", child, force=True)
        assert not report.updated
        assert remote.mutations == []

    def test_fast_forward_update(self, remote, commits):
        parent, child = commits
        remote.add_branch("release", sha=parent)
        report = RefUpdater(remote).update("refs/heads/release", child)
        assert report.updated
        assert (report.old_sha, report.sha) == (parent, child)
        assert remote.head("release") == child

    def test_non_fast_forward_needs_force(self, remote, commits):
        parent, child = commits
        remote.add_branch("release", sha=child)
        with pytest.raises(TransportError, match="fast forward"):
            RefUpdater(remote).update("refs/heads/release", parent)
        report = RefUpdater(remote).update("refs/heads/release", parent, force=True)
        assert report.updated
        assert remote.head("release") == parent

    def test_immutable_divergence_is_skipped(self, remote, commits):
        parent, child = commits
        remote.add_tag("stable", parent)
        report = RefUpdater(remote).update("refs/tags/stable", child, immutable=True)
        assert (report.old_sha, report.sha, report.updated) == (parent, child, False)
        assert isinstance(report.error, ImmutableRefSkip)
        assert report.skipped
        assert not report.failed
        assert report.to_dict()["skipped"] is True
        assert remote.refs["refs/tags/stable"] == parent
        assert remote.mutations == []

    def test_force_and_immutable_rejected_before_remote_call(self, remote, commits):
        with pytest.raises(InputValidationError, match="mutually exclusive"):
            RefUpdater(remote).update("refs/tags/stable", commits[1], force=True, immutable=True)
        assert remote.calls == []

    def test_annotated_tag_compared_by_peeled_commit(self, remote, commits):
        _, child = commits
        remote.add_tag("v1", child, message="release")
        report = RefUpdater(remote).update("refs/tags/v1", child)
        assert not report.updated
        assert report.old_sha == child

    def test_dry_run(self, remote, commits):
        parent, child = commits
        remote.add_branch("release", sha=parent)
        report = RefUpdater(remote).update("refs/heads/release", child, dry_run=True)
        assert report.updated
        assert remote.head("release") == parent
        assert remote.mutations == []


class TestUpdateMany:
    def test_source_branch_to_tag_targets(self, remote, commits):
        _, child = commits
        report = _update_many(remote, source="main", targets=["stable", "heads/deploy"])
        assert report.source.ref == "refs/heads/main"
        assert report.source.sha == child
        assert [t.ref for t in report.target] == ["refs/tags/stable", "refs/heads/deploy"]
        assert all(t.updated for t in report.target)
        assert not report.failed

    def test_tag_source_qualified_by_source_type(self, remote, commits):
        parent, _ = commits
        remote.add_tag("v1", parent)
        report = _update_many(remote, source="v1", source_type="tags", targets=["stable"])
        assert report.source.ref == "refs/tags/v1"
        assert report.source.sha == parent

    def test_commit_hash_source_has_no_ref(self, remote, commits):
        parent, _ = commits
        report = _update_many(remote, source=parent[:8], targets=["stable"])
        assert report.source.ref == ""
        assert report.source.sha == parent

    def test_unresolvable_source(self, remote):
        report = _update_many(remote, source="nope", targets=["stable"])
        assert isinstance(report.error, ResolutionError)
        assert report.target == []
        assert report.failed
        assert remote.mutations == []

    def test_failure_on_one_target_does_not_abort_batch(self, remote, commits):
        parent, child = commits
        remote.add_branch("ahead", sha=child)
        report = _update_many(
            remote, source=parent, targets=["heads/ahead", "heads/fresh"], target_type="heads"
        )
        first, second = report.target
        assert isinstance(first.error, TransportError)
        assert not first.updated
        assert second.updated
        assert report.failed

    def test_immutable_skip_does_not_fail_report(self, remote, commits):
        parent, child = commits
        remote.add_tag("stable", parent)
        report = _update_many(remote, source="main", targets=["stable", "latest"], immutable=True)
        skipped, created = report.target
        assert skipped.skipped
        assert created.updated
        assert not report.failed
        data = report.to_dict()
        assert data["target"][0] == {
            "ref": "refs/tags/stable",
            "old_sha": parent,
            "sha": child,
            "updated": False,
            "error": str(skipped.error),
            "skipped": True,
        }

    def test_invalid_target_rejected_before_remote_call(self, remote):
        with pytest.raises(RefNameError):
            _update_many(remote, source="main", targets=["ok", "bad..name"])
        assert remote.calls == []

    def test_policy_conflict_rejected_before_remote_call(self, remote):
        with pytest.raises(InputValidationError):
            _update_many(remote, source="main", targets=["x"], force=True, immutable=True)
        assert remote.calls == []

    def test_report_shape(self, remote, commits):
        _, child = commits
        data = _update_many(remote, source="main", targets=["stable"]).to_dict()
        assert data == {
            "repository": "octo/repo",
            "source": {"commitish": "main", "ref": "refs/heads/main", "sha": child},
            "target": [{"ref": "refs/tags/stable", "sha": child, "updated": True}],
        }
