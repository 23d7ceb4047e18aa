"""Testing utilities.

``FakeGitHub`` is an in-memory stand-in for ``ghsync.remote.GitHubClient``:
same method names and return types, backed by plain dicts of commits
(each with a full file tree), refs, tag objects, pull requests and
deployments. Every mutating call is appended to ``mutations`` and every
call to ``calls``, so tests can assert that nothing was written.

Usage:
    from ghsync.testing import FakeGitHub

    remote = FakeGitHub()
    base = remote.add_branch("main", {"README.md": b"hi"})
    ...
    assert remote.mutations == []
"""

from __future__ import annotations

import hashlib
import re
from typing import Any, Dict, List, Optional, Tuple

from .content import blob_hash
from .errors import ConcurrencyConflictError, NotFoundError, TransportError
from .models import (
    AutoMergeMode,
    BranchState,
    Deployment,
    GitRef,
    PullRequestRef,
    PullRequestState,
    RefKind,
    RepositoryInfo,
    RepositoryRef,
    TagObject,
)
from .refs import is_commit_hash, short_ref_name

_RELATIVE_RE = re.compile(r"^(?P<base>.+?)~(?P<n>\d*)$")


class FakeGitHub:
    """In-memory remote repository implementing the transport interface."""

    def __init__(
        self,
        owner: str = "octo",
        name: str = "repo",
        default_branch: str = "main",
        auto_merge_allowed: bool = True,
        merge_commit_allowed: bool = True,
        squash_merge_allowed: bool = True,
        rebase_merge_allowed: bool = True,
    ):
        self.repository = RepositoryRef(owner, name)
        self.node_id = f"R_{owner}_{name}"
        self.default_branch = default_branch
        self.auto_merge_allowed = auto_merge_allowed
        self.merge_commit_allowed = merge_commit_allowed
        self.squash_merge_allowed = squash_merge_allowed
        self.rebase_merge_allowed = rebase_merge_allowed

        self.commits: Dict[str, Dict[str, Any]] = {}
        self.refs: Dict[str, str] = {}
        self.tag_objects: Dict[str, Dict[str, str]] = {}
        self.pull_requests: List[Dict[str, Any]] = []
        self.deployments: List[Dict[str, Any]] = []
        self.deployment_statuses: List[Dict[str, Any]] = []

        self.fail_auto_merge = False
        self.calls: List[str] = []
        self.mutations: List[Tuple[str, Tuple[Any, ...]]] = []
        self._counter = 0

    # ------------------------------------------------------------------
    # Seeding helpers (not part of the transport interface)
    # ------------------------------------------------------------------

    def _new_sha(self, kind: str, text: str) -> str:
        self._counter += 1
        return hashlib.sha1(f"{kind} {self._counter} {text}".encode()).hexdigest()

    def add_commit(
        self,
        files: Optional[Dict[str, bytes]] = None,
        parent: Optional[str] = None,
        message: str = "commit",
    ) -> str:
        """Create a commit whose tree is the parent's tree updated with ``files``."""
        tree = dict(self.commits[parent]["tree"]) if parent else {}
        tree.update(files or {})
        sha = self._new_sha("commit", message)
        self.commits[sha] = {"parent": parent, "tree": tree, "message": message}
        return sha

    def add_branch(self, name: str, files: Optional[Dict[str, bytes]] = None, sha: Optional[str] = None) -> str:
        """Point ``refs/heads/<name>`` at ``sha`` or at a new commit with ``files``."""
        if sha is None:
            sha = self.add_commit(files, message=f"init {name}")
        self.refs[f"refs/heads/{name}"] = sha
        return sha

    def add_tag(self, name: str, sha: str, message: Optional[str] = None) -> str:
        """Create a lightweight tag, or an annotated one when ``message`` is given."""
        target = sha
        if message is not None:
            target = self._new_sha("tag", name)
            self.tag_objects[target] = {"name": name, "message": message, "target": sha}
        self.refs[f"refs/tags/{name}"] = target
        return target

    def head(self, branch: str) -> Optional[str]:
        return self.refs.get(f"refs/heads/{branch}")

    def tree(self, revision: str) -> Dict[str, bytes]:
        sha = self.resolve_expression(revision)
        return dict(self.commits[sha]["tree"]) if sha else {}

    def close(self) -> None:
        pass

    def __enter__(self) -> "FakeGitHub":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _record(self, name: str, *args: Any) -> None:
        self.mutations.append((name, args))

    def _peel(self, sha: str) -> str:
        while sha in self.tag_objects:
            sha = self.tag_objects[sha]["target"]
        return sha

    def _is_ancestor(self, ancestor: str, sha: Optional[str]) -> bool:
        while sha:
            if sha == ancestor:
                return True
            sha = self.commits.get(sha, {}).get("parent")
        return False

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_repository_info(self, branch: str = "") -> RepositoryInfo:
        self.calls.append("get_repository_info")
        return RepositoryInfo(
            node_id=self.node_id,
            is_empty=not self.commits,
            default_branch=BranchState(
                name=self.default_branch, head_sha=self.head(self.default_branch) or ""
            ),
            target_branch=BranchState(name=branch, head_sha=(self.head(branch) or "") if branch else ""),
            auto_merge_allowed=self.auto_merge_allowed,
            merge_commit_allowed=self.merge_commit_allowed,
            squash_merge_allowed=self.squash_merge_allowed,
            rebase_merge_allowed=self.rebase_merge_allowed,
        )

    def get_commit_sha(self, sha: str) -> Optional[str]:
        self.calls.append("get_commit_sha")
        matches = [c for c in self.commits if c.startswith(sha)]
        return matches[0] if len(matches) == 1 else None

    def resolve_expression(self, expression: str) -> Optional[str]:
        self.calls.append("resolve_expression")
        steps = 0
        match = _RELATIVE_RE.match(expression)
        if match:
            expression = match.group("base")
            steps = int(match.group("n") or 1)

        sha: Optional[str] = None
        if expression in self.commits:
            sha = expression
        else:
            name = expression[len("refs/"):] if expression.startswith("refs/") else expression
            for candidate in (f"refs/{name}", f"refs/heads/{name}", f"refs/tags/{name}"):
                if candidate in self.refs:
                    sha = self._peel(self.refs[candidate])
                    break
            if sha is None and is_commit_hash(expression):
                sha = self.get_commit_sha(expression)

        for _ in range(steps):
            if sha is None:
                break
            sha = self.commits[sha]["parent"]
        return sha

    def get_file_hash(self, revision: str, path: str) -> Optional[str]:
        content = self.tree(revision).get(path)
        return blob_hash(content) if content is not None else None

    def get_file_content(self, revision: str, path: str) -> Optional[bytes]:
        content = self.tree(revision).get(path)
        if content is not None and b"\x00" in content:
            raise TransportError(f"{revision}:{path} is a binary file; only text files can be copied")
        return content

    def get_ref(self, ref: str) -> Optional[GitRef]:
        self.calls.append("get_ref")
        ref = ref if ref.startswith("refs/") else f"refs/{ref}"
        sha = self.refs.get(ref)
        if sha is None:
            return None
        kind = RefKind.TAG if sha in self.tag_objects else RefKind.COMMIT
        return GitRef(ref=ref, sha=sha, kind=kind)

    def get_tag(self, name: str) -> Optional[TagObject]:
        self.calls.append("get_tag")
        sha = self.refs.get(f"refs/tags/{name}")
        if sha is None:
            return None
        if sha not in self.tag_objects:
            return TagObject(name=name, lightweight=True, target_sha=sha)
        return TagObject(name=name, lightweight=False, target_sha=self._peel(sha), annotation_sha=sha)

    def list_matching_refs(self, prefix: str, sha: str) -> List[str]:
        return sorted(
            ref[len(prefix):]
            for ref, target in self.refs.items()
            if ref.startswith(prefix) and self._peel(target) == sha
        )

    def find_pull_request(self, head: str, base: str) -> Optional[PullRequestRef]:
        self.calls.append("find_pull_request")
        for pr in self.pull_requests:
            if pr["head"] == head and pr["base"] == base and not pr.get("isCrossRepository"):
                return PullRequestRef(
                    number=pr["number"], url=pr["url"], node_id=pr["id"], title=pr["title"], draft=pr["isDraft"]
                )
        return None

    def list_deployments(self, sha: str, environment: str) -> List[Deployment]:
        return [
            Deployment(id=d["id"], sha=d["sha"], environment=d["environment"])
            for d in self.deployments
            if d["sha"] == sha and d["environment"] == environment
        ]

    def commit_url(self, sha: str) -> str:
        return f"https://github.com/{self.repository}/commit/{sha}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_ref(self, ref: str, sha: str) -> GitRef:
        self._record("create_ref", ref, sha)
        if ref in self.refs:
            raise TransportError(f"Reference already exists: {ref}", status_code=422)
        self.refs[ref] = sha
        return GitRef(ref=ref, sha=sha)

    def update_ref(self, ref: str, sha: str, force: bool = False) -> GitRef:
        self._record("update_ref", ref, sha, force)
        if ref not in self.refs:
            raise NotFoundError(f"Reference does not exist: {ref}", status_code=404)
        current = self._peel(self.refs[ref])
        if not force and not self._is_ancestor(current, self._peel(sha)):
            raise TransportError("Update is not a fast forward", status_code=422)
        self.refs[ref] = sha
        return GitRef(ref=ref, sha=sha)

    def delete_ref(self, ref: str) -> None:
        self._record("delete_ref", ref)
        if self.refs.pop(ref, None) is None:
            raise NotFoundError(f"Reference does not exist: {ref}", status_code=404)

    def create_tag_object(self, name: str, message: str, sha: str) -> str:
        self._record("create_tag_object", name, message, sha)
        tag_sha = self._new_sha("tag", name)
        self.tag_objects[tag_sha] = {"name": name, "message": message, "target": sha}
        return tag_sha

    def create_commit_on_branch(
        self,
        branch: str,
        expected_head: str,
        additions: Dict[str, bytes],
        deletions: List[str],
        headline: str,
        body: Optional[str] = None,
    ) -> Tuple[str, str]:
        self._record("create_commit_on_branch", branch, expected_head, dict(additions), list(deletions), headline, body)
        name = short_ref_name(branch)
        current = self.head(name)
        if current != expected_head:
            raise ConcurrencyConflictError(name, expected_head, f"branch is at {current}")
        tree = dict(self.commits[current]["tree"])
        tree.update(additions)
        for path in deletions:
            tree.pop(path, None)
        message = headline if not body else f"{headline}\n{body}"
        sha = self._new_sha("commit", message)
        self.commits[sha] = {"parent": current, "tree": tree, "message": message}
        self.refs[f"refs/heads/{name}"] = sha
        return sha, self.commit_url(sha)

    def create_pull_request(self, pr: PullRequestState) -> PullRequestState:
        self._record("create_pull_request", pr.head, pr.base, pr.title)
        number = len(self.pull_requests) + 1
        record = {
            "id": f"PR_{number}",
            "number": number,
            "url": f"https://github.com/{self.repository}/pull/{number}",
            "head": pr.head,
            "base": pr.base,
            "title": pr.title,
            "body": pr.body,
            "isDraft": pr.draft,
            "isCrossRepository": False,
            "autoMerge": None,
        }
        self.pull_requests.append(record)
        pr.node_id = record["id"]
        pr.number = number
        pr.url = record["url"]
        return pr

    def enable_auto_merge(self, pr_node_id: str, mode: AutoMergeMode) -> None:
        self._record("enable_auto_merge", pr_node_id, mode.graphql_method)
        if self.fail_auto_merge:
            raise TransportError("Pull request is in clean status", status_code=None)
        for pr in self.pull_requests:
            if pr["id"] == pr_node_id:
                pr["autoMerge"] = mode.graphql_method

    def create_deployment(
        self,
        ref: str,
        environment: str,
        description: str = "",
        transient: bool = False,
        production: bool = False,
    ) -> Deployment:
        self._record("create_deployment", ref, environment)
        record = {
            "id": len(self.deployments) + 1,
            "sha": ref,
            "environment": environment,
            "description": description,
            "transient": transient,
            "production": production,
        }
        self.deployments.append(record)
        return Deployment(id=record["id"], sha=ref, environment=environment)

    def create_deployment_status(
        self,
        deployment_id: int,
        state: str,
        description: str = "",
        environment: str = "",
        environment_url: str = "",
    ) -> int:
        self._record("create_deployment_status", deployment_id, state)
        status_id = len(self.deployment_statuses) + 1
        self.deployment_statuses.append(
            {
                "id": status_id,
                "deployment_id": deployment_id,
                "state": state,
                "description": description,
                "environment_url": environment_url,
            }
        )
        return status_id
