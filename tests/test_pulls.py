"""Tests for the pull-request reconciler and auto-merge negotiation."""

from __future__ import annotations

import logging

import pytest

from ghsync.models import AutoMergeMode, PullRequestState
from ghsync.pulls import PullRequestReconciler, negotiate_auto_merge
from ghsync.testing import FakeGitHub


def _pr(remote, mode=AutoMergeMode.OFF, **kwargs):
    return PullRequestState(
        repo_node_id=remote.node_id,
        head=kwargs.pop("head", "feature"),
        base=kwargs.pop("base", "main"),
        title=kwargs.pop("title", "Update docs"),
        auto_merge=mode,
        **kwargs,
    )


@pytest.fixture
def feature(remote):
    return remote.add_branch("feature", sha=remote.add_commit({"a.txt": b"a"}, parent=remote.head("main")))


class TestNegotiateAutoMerge:
    def test_off_is_kept(self, remote):
        assert negotiate_auto_merge(remote.get_repository_info(), AutoMergeMode.OFF) is AutoMergeMode.OFF

    def test_supported_mode_is_kept(self, remote):
        info = remote.get_repository_info()
        assert negotiate_auto_merge(info, AutoMergeMode.SQUASH) is AutoMergeMode.SQUASH

    def test_disabled_repository_downgrades_with_warning(self, caplog):
        info = FakeGitHub(auto_merge_allowed=False).get_repository_info()
        with caplog.at_level(logging.WARNING, logger="ghsync"):
            assert negotiate_auto_merge(info, AutoMergeMode.MERGE) is AutoMergeMode.OFF
        assert "auto-merge is disabled" in caplog.text

    def test_unsupported_method_downgrades_with_warning(self, caplog):
        info = FakeGitHub(merge_commit_allowed=False, rebase_merge_allowed=False).get_repository_info()
        with caplog.at_level(logging.WARNING, logger="ghsync"):
            assert negotiate_auto_merge(info, AutoMergeMode.REBASE) is AutoMergeMode.OFF
        assert "method not allowed" in caplog.text
        assert negotiate_auto_merge(info, AutoMergeMode.SQUASH) is AutoMergeMode.SQUASH


class TestEnsure:
    def test_creates_pull_request(self, remote, feature):
        pr = PullRequestReconciler(remote).ensure(_pr(remote), remote.get_repository_info("feature"))
        assert pr.created
        assert pr.number == 1
        assert pr.url == "https://github.com/octo/repo/pull/1"
        assert remote.pull_requests[0]["head"] == "feature"

    def test_existing_pull_request_is_returned(self, remote, feature):
        remote.create_pull_request(_pr(remote, title="Earlier"))
        remote.mutations.clear()
        pr = PullRequestReconciler(remote).ensure(_pr(remote), remote.get_repository_info("feature"))
        assert not pr.created
        assert pr.number == 1
        assert pr.title == "Earlier"
        assert remote.mutations == []

    def test_search_skipped_for_new_branch(self, remote, feature):
        remote.create_pull_request(_pr(remote))
        remote.calls.clear()
        pr = PullRequestReconciler(remote).ensure(
            _pr(remote), remote.get_repository_info("feature"), branch_is_new=True
        )
        assert "find_pull_request" not in remote.calls
        assert pr.created
        assert pr.number == 2

    def test_cross_repository_pull_request_is_ignored(self, remote, feature):
        remote.create_pull_request(_pr(remote))
        remote.pull_requests[0]["isCrossRepository"] = True
        pr = PullRequestReconciler(remote).ensure(_pr(remote), remote.get_repository_info("feature"))
        assert pr.created

    def test_auto_merge_enabled_on_new_pull_request(self, remote, feature):
        pr = PullRequestReconciler(remote).ensure(
            _pr(remote, AutoMergeMode.SQUASH), remote.get_repository_info("feature")
        )
        assert pr.auto_merge is AutoMergeMode.SQUASH
        assert remote.pull_requests[0]["autoMerge"] == "SQUASH"

    def test_auto_merge_not_touched_on_existing_pull_request(self, remote, feature):
        remote.create_pull_request(_pr(remote))
        remote.mutations.clear()
        pr = PullRequestReconciler(remote).ensure(
            _pr(remote, AutoMergeMode.MERGE), remote.get_repository_info("feature")
        )
        assert remote.mutations == []
        assert pr.auto_merge is AutoMergeMode.OFF
        assert pr.to_dict()["auto_merge"] == "off"

    def test_existing_pull_request_skips_negotiation(self, caplog):
        remote = FakeGitHub(auto_merge_allowed=False)
        remote.add_branch("main", {"b": b"b"})
        remote.add_branch("feature", {"a": b"a"})
        remote.create_pull_request(_pr(remote))
        with caplog.at_level(logging.WARNING, logger="ghsync"):
            pr = PullRequestReconciler(remote).ensure(_pr(remote, AutoMergeMode.MERGE), remote.get_repository_info())
        assert not pr.created
        assert pr.auto_merge is AutoMergeMode.OFF
        assert "auto-merge" not in caplog.text

    def test_auto_merge_failure_is_a_warning(self, remote, feature, caplog):
        remote.fail_auto_merge = True
        with caplog.at_level(logging.WARNING, logger="ghsync"):
            pr = PullRequestReconciler(remote).ensure(
                _pr(remote, AutoMergeMode.MERGE), remote.get_repository_info("feature")
            )
        assert pr.created
        assert pr.auto_merge is AutoMergeMode.OFF
        assert pr.error is None
        assert "could not enable auto-merge" in caplog.text

    def test_downgraded_mode_skips_enable_call(self):
        remote = FakeGitHub(auto_merge_allowed=False)
        remote.add_branch("feature", {"a": b"a"})
        remote.add_branch("main", {"b": b"b"})
        pr = PullRequestReconciler(remote).ensure(_pr(remote, AutoMergeMode.MERGE), remote.get_repository_info())
        assert pr.created
        assert pr.auto_merge is AutoMergeMode.OFF
        assert [m[0] for m in remote.mutations] == ["create_pull_request"]

    def test_dry_run_does_not_create(self, remote, feature):
        pr = PullRequestReconciler(remote).ensure(_pr(remote), remote.get_repository_info("feature"), dry_run=True)
        assert not pr.created
        assert pr.number is None
        assert remote.pull_requests == []

    def test_report_shape(self, remote, feature):
        pr = PullRequestReconciler(remote).ensure(_pr(remote, draft=True), remote.get_repository_info("feature"))
        assert pr.to_dict() == {
            "head": "feature",
            "base": "main",
            "title": "Update docs",
            "draft": True,
            "auto_merge": "off",
            "number": 1,
            "url": "https://github.com/octo/repo/pull/1",
            "created": True,
        }
