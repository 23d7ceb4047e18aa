"""Tests for the tag reconciler state machine."""

from __future__ import annotations

import pytest

from ghsync.errors import InputValidationError, RefNameError, ResolutionError, TagConflictError
from ghsync.models import TagReport, TagRequest
from ghsync.tags import TagReconciler


def _reconcile(remote, **kwargs):
    request = TagRequest(**kwargs)
    report = TagReport(repository=str(remote.repository), tag=request.name, commitish=request.commitish)
    return TagReconciler(remote).reconcile(request, report)


@pytest.fixture
def commits(remote):
    b = remote.head("main")
    a = remote.commits[b]["parent"]
    return a, b


class TestCreate:
    def test_annotated_by_default(self, remote, commits):
        a, _ = commits
        report = _reconcile(remote, name="v1", commitish=a, message="release v1")
        assert report.updated
        assert report.sha == a
        tag = remote.get_tag("v1")
        assert not tag.lightweight
        assert tag.target_sha == a
        assert [m[0] for m in remote.mutations] == ["create_tag_object", "create_ref"]

    def test_lightweight_skips_tag_object(self, remote, commits):
        a, _ = commits
        report = _reconcile(remote, name="v1", commitish=a, lightweight=True)
        assert report.updated
        assert remote.get_tag("v1").lightweight
        assert [m[0] for m in remote.mutations] == ["create_ref"]

    def test_annotated_requires_message(self, remote, commits):
        with pytest.raises(InputValidationError, match="message"):
            _reconcile(remote, name="v1", commitish=commits[0])
        assert remote.mutations == []

    def test_invalid_tag_name(self, remote, commits):
        with pytest.raises(RefNameError):
            _reconcile(remote, name="v1..0", commitish=commits[0], lightweight=True)

    def test_branch_qualified_name_rejected(self, remote, commits):
        with pytest.raises(InputValidationError):
            _reconcile(remote, name="refs/heads/main", commitish=commits[0], lightweight=True)

    def test_unresolvable_commitish(self, remote):
        with pytest.raises(ResolutionError):
            _reconcile(remote, name="v1", commitish="nope", lightweight=True)
        assert remote.mutations == []

    def test_report_url_points_at_commit(self, remote, commits):
        report = _reconcile(remote, name="v1", commitish=commits[0], lightweight=True)
        assert report.url == f"https://github.com/octo/repo/commit/{commits[0]}"

    def test_dry_run(self, remote, commits):
        report = _reconcile(remote, name="v1", commitish=commits[0], message="m", dry_run=True)
        assert report.updated
        assert remote.get_tag("v1") is None
        assert remote.mutations == []


class TestExisting:
    def test_same_target_same_kind_is_noop(self, remote, commits):
        a, _ = commits
        remote.add_tag("v1", a, message="release")
        report = _reconcile(remote, name="v1", commitish=a, message="another message")
        assert not report.updated
        assert remote.mutations == []

    def test_different_target_without_force_conflicts(self, remote, commits):
        a, b = commits
        remote.add_tag("v1", a, message="release")
        with pytest.raises(TagConflictError) as excinfo:
            _reconcile(remote, name="v1", commitish=b, message="release")
        assert a in str(excinfo.value)
        assert excinfo.value.existing_sha == a
        assert remote.mutations == []

    def test_different_kind_without_force_conflicts(self, remote, commits):
        a, _ = commits
        remote.add_tag("v1", a)
        with pytest.raises(TagConflictError, match="lightweight"):
            _reconcile(remote, name="v1", commitish=a, message="now annotated")

    def test_force_repoints_annotated(self, remote, commits):
        a, b = commits
        remote.add_tag("v1", a, message="release")
        report = _reconcile(remote, name="v1", commitish=b, message="moved", force=True)
        assert report.updated
        tag = remote.get_tag("v1")
        assert tag.target_sha == b
        assert not tag.lightweight
        assert [m[0] for m in remote.mutations] == ["create_tag_object", "update_ref"]

    def test_force_repoints_lightweight(self, remote, commits):
        a, b = commits
        remote.add_tag("v1", a)
        report = _reconcile(remote, name="v1", commitish=b, lightweight=True, force=True)
        assert report.updated
        assert remote.refs["refs/tags/v1"] == b
        assert remote.mutations == [("update_ref", ("refs/tags/v1", b, True))]

    def test_force_converts_kind(self, remote, commits):
        a, _ = commits
        remote.add_tag("v1", a, message="release")
        _reconcile(remote, name="v1", commitish=a, lightweight=True, force=True)
        assert remote.get_tag("v1").lightweight

    def test_state_machine_round_trip(self, remote, commits):
        a, b = commits
        assert _reconcile(remote, name="T", commitish=a, message="m").updated
        assert not _reconcile(remote, name="T", commitish=a, message="m").updated
        with pytest.raises(TagConflictError, match=a):
            _reconcile(remote, name="T", commitish=b, message="m")
        assert _reconcile(remote, name="T", commitish=b, message="m", force=True).updated
        assert remote.get_tag("T").target_sha == b
