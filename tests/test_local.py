"""Tests for the local working-tree collaborator (real repositories via GitPython)."""

from __future__ import annotations

from pathlib import Path

import pytest
from git import Repo

from ghsync.local import LocalRepository, LocalRepositoryError, github_actions_context, parse_remote_url
from ghsync.models import RepositoryRef


@pytest.fixture
def repo(tmp_path):
    path = tmp_path / "clone"
    path.mkdir()
    repo = Repo.init(path)
    with repo.config_writer() as cfg:
        cfg.set_value("user", "name", "Test")
        cfg.set_value("user", "email", "test@example.com")
    (path / "README.md").write_text("hello\n")
    (path / "docs").mkdir()
    (path / "docs" / "guide.md").write_text("guide\n")
    repo.index.add(["README.md", "docs/guide.md"])
    repo.index.commit("initial")
    repo.git.checkout("-B", "work")
    return repo


def _local(repo, env=None):
    return LocalRepository(repo.working_tree_dir, env=env or {})


class TestParseRemoteUrl:
    @pytest.mark.parametrize(
        "url",
        [
            "git@github.com:octo/repo.git",
            "https://github.com/octo/repo",
            "https://github.com/octo/repo.git/",
            "https://github.com/octo/repo/",
            "ssh://git@github.com/octo/repo.git",
            "https://token@github.com/octo/repo",
        ],
    )
    def test_github_forms(self, url):
        assert parse_remote_url(url) == ("github.com", "octo/repo")

    def test_enterprise_host(self):
        assert parse_remote_url("git@ghe.example.com:team/tool.git") == ("ghe.example.com", "team/tool")

    @pytest.mark.parametrize("url", ["", None, "/srv/git/repo", "https://github.com/octo"])
    def test_unrecognized(self, url):
        assert parse_remote_url(url) == (None, None)


class TestActionsContext:
    def test_push_event(self):
        env = {"GITHUB_REPOSITORY": "octo/repo", "GITHUB_REF_NAME": "main", "GITHUB_REF_TYPE": "branch"}
        assert github_actions_context(env) == (RepositoryRef("octo", "repo"), "main")

    def test_pull_request_event_uses_head_ref(self):
        env = {"GITHUB_REPOSITORY": "octo/repo", "GITHUB_HEAD_REF": "feature", "GITHUB_REF_NAME": "12/merge"}
        assert github_actions_context(env)[1] == "feature"

    def test_tag_push_has_no_branch(self):
        env = {"GITHUB_REPOSITORY": "octo/repo", "GITHUB_REF_NAME": "v1", "GITHUB_REF_TYPE": "tag"}
        assert github_actions_context(env)[1] == ""

    def test_outside_actions(self):
        assert github_actions_context({}) == (None, "")


class TestContext:
    def test_not_a_repository(self, tmp_path):
        with pytest.raises(LocalRepositoryError):
            LocalRepository(tmp_path / "missing", env={})

    def test_github_repository_from_origin(self, repo):
        repo.create_remote("upstream", "https://github.com/other/fork.git")
        repo.create_remote("origin", "git@github.com:octo/repo.git")
        assert _local(repo).github_repository() == RepositoryRef("octo", "repo")

    def test_git_url_override(self, repo):
        local = _local(repo, env={"GIT_URL": "https://github.com/env/repo"})
        assert local.github_repository() == RepositoryRef("env", "repo")

    def test_other_host_is_ignored(self, repo):
        repo.create_remote("origin", "git@gitlab.com:octo/repo.git")
        assert _local(repo).github_repository() is None

    def test_no_remote(self, repo):
        assert _local(repo).remote_url() == ""

    def test_current_branch(self, repo):
        assert _local(repo).current_branch() == "work"
        assert _local(repo, env={"GIT_BRANCH": "override"}).current_branch() == "override"

    def test_detached_head(self, repo):
        repo.git.checkout(repo.head.commit.hexsha)
        assert _local(repo).current_branch() == ""

    def test_head_and_clean(self, repo):
        local = _local(repo)
        assert local.head_sha() == repo.head.commit.hexsha
        assert local.is_clean()
        (local.root / "README.md").write_text("changed\n")
        assert not local.is_clean()

    def test_untracked_files_do_not_make_tree_dirty(self, repo):
        local = _local(repo)
        (local.root / "scratch.txt").write_text("x")
        assert local.is_clean()

    def test_discovered_from_subdirectory(self, repo):
        local = LocalRepository(f"{repo.working_tree_dir}/docs", env={})
        assert local.root.resolve() == Path(repo.working_tree_dir).resolve()


class TestChangeSets:
    def test_tracked_includes_unstaged_and_staged(self, repo):
        root = _local(repo).root
        (root / "README.md").write_text("changed\n")
        (root / "docs" / "guide.md").unlink()
        (root / "new.txt").write_text("new\n")
        repo.index.add(["new.txt"])
        (root / "untracked.txt").write_text("ignored\n")

        changes = _local(repo).tracked()
        assert changes.additions == {"README.md": b"changed\n", "new.txt": b"new\n"}
        assert changes.deletions == {"docs/guide.md"}

    def test_tracked_clean_tree_is_empty(self, repo):
        assert not _local(repo).tracked()

    def test_staged_uses_index_content(self, repo):
        root = _local(repo).root
        (root / "README.md").write_text("staged\n")
        repo.index.add(["README.md"])
        (root / "README.md").write_text("worktree\n")
        repo.index.remove(["docs/guide.md"], working_tree=True)

        changes = _local(repo).staged()
        assert changes.additions == {"README.md": b"staged\n"}
        assert changes.deletions == {"docs/guide.md"}

    def test_staged_ignores_unstaged_edits(self, repo):
        (_local(repo).root / "README.md").write_text("unstaged\n")
        assert not _local(repo).staged()

    def test_repository_without_commits(self, tmp_path):
        path = tmp_path / "fresh"
        path.mkdir()
        repo = Repo.init(path)
        (path / "a.txt").write_text("a\n")
        repo.index.add(["a.txt"])
        local = LocalRepository(path, env={})
        assert local.head_sha() == ""
        assert local.staged().additions == {"a.txt": b"a\n"}
        assert local.tracked().additions == {"a.txt": b"a\n"}
