"""GitHub API transport.

``GitHubClient`` wraps a single ``httpx.Client`` and exposes the typed
read/write operations the reconcilers need, decoding every response into
the records in ``ghsync.models`` at this boundary. REST v3 is used for refs,
tag objects, commit lookups and deployments; GraphQL v4 for repository
metadata, expression resolution, file hashes, commits and pull requests.

Rate limiting (HTTP 429, or 403 with an exhausted quota) is retried here with
back-off; everything else surfaces as a ``TransportError`` subclass.
"""

from __future__ import annotations

import base64
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from . import __version__
from .errors import (
    AuthenticationError,
    ConcurrencyConflictError,
    GraphQLError,
    NotFoundError,
    RateLimitError,
    TransportError,
)
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
from .observability import log_debug, log_warning
from .refs import short_ref_name

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_GRAPHQL_URL = "https://api.github.com/graphql"
DEFAULT_TIMEOUT = 30.0
DEFAULT_MAX_RETRIES = 3
DEFAULT_MAX_BACKOFF = 60.0

_REPOSITORY_INFO_QUERY = """
query($owner: String!, $repo: String!, $branch: String!, $hasBranch: Boolean!) {
  repository(owner: $owner, name: $repo) {
    id
    isEmpty
    autoMergeAllowed
    mergeCommitAllowed
    squashMergeAllowed
    rebaseMergeAllowed
    defaultBranchRef { name target { oid } }
    ref(qualifiedName: $branch) @include(if: $hasBranch) { target { oid } }
  }
}
"""

_RESOLVE_QUERY = """
query($owner: String!, $repo: String!, $expression: String!) {
  repository(owner: $owner, name: $repo) {
    object(expression: $expression) {
      __typename
      oid
      ... on Tag {
        target {
          __typename
          oid
          ... on Tag { target { __typename oid } }
        }
      }
    }
  }
}
"""

_BLOB_QUERY = """
query($owner: String!, $repo: String!, $expression: String!) {
  repository(owner: $owner, name: $repo) {
    object(expression: $expression) {
      __typename
      ... on Blob { oid isBinary text }
    }
  }
}
"""

_REFS_QUERY = """
query($owner: String!, $repo: String!, $prefix: String!, $cursor: String) {
  repository(owner: $owner, name: $repo) {
    refs(refPrefix: $prefix, first: 100, after: $cursor) {
      pageInfo { hasNextPage endCursor }
      nodes {
        name
        target {
          __typename
          oid
          ... on Tag { target { oid } }
        }
      }
    }
  }
}
"""

_CREATE_COMMIT_MUTATION = """
mutation($input: CreateCommitOnBranchInput!) {
  createCommitOnBranch(input: $input) {
    commit { oid url }
  }
}
"""

_FIND_PULL_REQUEST_QUERY = """
query($owner: String!, $repo: String!, $head: String!, $base: String!) {
  repository(owner: $owner, name: $repo) {
    pullRequests(states: OPEN, headRefName: $head, baseRefName: $base, first: 10) {
      nodes { id number url isDraft title isCrossRepository }
    }
  }
}
"""

_CREATE_PULL_REQUEST_MUTATION = """
mutation($input: CreatePullRequestInput!) {
  createPullRequest(input: $input) {
    pullRequest { id number url }
  }
}
"""

_ENABLE_AUTO_MERGE_MUTATION = """
mutation($input: EnablePullRequestAutoMergeInput!) {
  enablePullRequestAutoMerge(input: $input) {
    pullRequest { id }
  }
}
"""


def _peel_commit(obj: Optional[Dict[str, Any]]) -> Optional[str]:
    """Follow (nested) tag objects down to a commit oid."""
    while obj:
        kind = obj.get("__typename")
        if kind == "Commit":
            return obj.get("oid")
        if kind == "Tag":
            obj = obj.get("target")
            continue
        return None
    return None


def _web_url_for(api_url: str) -> str:
    if api_url.rstrip("/") == DEFAULT_API_URL:
        return "https://github.com"
    # GitHub Enterprise: https://host/api/v3 -> https://host
    return api_url.rstrip("/").removesuffix("/api/v3")


class GitHubClient:
    """Token-authenticated client bound to one repository."""

    def __init__(
        self,
        token: str,
        repository: RepositoryRef,
        *,
        api_url: str = DEFAULT_API_URL,
        graphql_url: str = DEFAULT_GRAPHQL_URL,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_backoff: float = DEFAULT_MAX_BACKOFF,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.repository = repository
        self.api_url = api_url.rstrip("/")
        self.graphql_url = graphql_url
        self.web_url = _web_url_for(self.api_url)
        self.max_retries = max_retries
        self.max_backoff = max_backoff
        self._sleep = sleep
        self._http = httpx.Client(
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": f"ghsync/{__version__}",
            },
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _repo_path(self, suffix: str) -> str:
        return f"{self.api_url}/repos/{self.repository.owner}/{self.repository.name}/{suffix}"

    def _retry_delay(self, response: httpx.Response) -> Optional[float]:
        """Return seconds to wait if response is a rate-limit rejection."""
        remaining = response.headers.get("x-ratelimit-remaining")
        limited = response.status_code == 429 or (
            response.status_code == 403 and remaining == "0"
        )
        if not limited:
            return None
        retry_after = response.headers.get("retry-after")
        if retry_after and retry_after.isdigit():
            return min(float(retry_after), self.max_backoff)
        reset = response.headers.get("x-ratelimit-reset")
        if reset and reset.isdigit():
            return min(max(float(reset) - time.time(), 1.0), self.max_backoff)
        return min(2.0, self.max_backoff)

    def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = self._http.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                raise TransportError(f"{method} {url}: {exc}") from exc

            delay = self._retry_delay(response)
            if delay is None:
                break
            if attempt >= self.max_retries:
                raise RateLimitError(
                    f"{method} {url}: rate limit exceeded after {attempt} retries",
                    status_code=response.status_code,
                )
            attempt += 1
            log_warning("rate limited; backing off", url=url, delay=delay, attempt=attempt)
            self._sleep(delay)

        if response.status_code >= 400:
            message = self._error_message(response)
            if response.status_code == 401:
                raise AuthenticationError(f"{method} {url}: {message}", status_code=401)
            if response.status_code == 404:
                raise NotFoundError(f"{method} {url}: {message}", status_code=404)
            raise TransportError(
                f"{method} {url}: HTTP {response.status_code}: {message}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError:
            return response.text.strip() or response.reason_phrase
        if isinstance(data, dict):
            return str(data.get("message", data))
        return str(data)

    def _rest(self, method: str, suffix: str, **kwargs: Any) -> Any:
        response = self._send(method, self._repo_path(suffix), **kwargs)
        if not response.content:
            return None
        return response.json()

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL query or mutation and return its ``data`` object."""
        response = self._send("POST", self.graphql_url, json={"query": query, "variables": variables})
        body = response.json()
        if body.get("errors"):
            raise GraphQLError(body["errors"])
        return body.get("data") or {}

    def _repo_vars(self, **extra: Any) -> Dict[str, Any]:
        return {"owner": self.repository.owner, "repo": self.repository.name, **extra}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_repository_info(self, branch: str = "") -> RepositoryInfo:
        """Fetch repository metadata and, if given, the head of ``branch``."""
        data = self.graphql(
            _REPOSITORY_INFO_QUERY,
            self._repo_vars(
                branch=f"refs/heads/{branch}" if branch else "",
                hasBranch=bool(branch),
            ),
        )
        repo = data.get("repository")
        if repo is None:
            raise NotFoundError(f"repository {self.repository} not found")

        default_ref = repo.get("defaultBranchRef") or {}
        target_ref = repo.get("ref") or {}
        return RepositoryInfo(
            node_id=repo["id"],
            is_empty=bool(repo.get("isEmpty")),
            default_branch=BranchState(
                name=default_ref.get("name", ""),
                head_sha=(default_ref.get("target") or {}).get("oid", ""),
            ),
            target_branch=BranchState(
                name=branch,
                head_sha=(target_ref.get("target") or {}).get("oid", ""),
            ),
            auto_merge_allowed=bool(repo.get("autoMergeAllowed")),
            merge_commit_allowed=bool(repo.get("mergeCommitAllowed", True)),
            squash_merge_allowed=bool(repo.get("squashMergeAllowed", True)),
            rebase_merge_allowed=bool(repo.get("rebaseMergeAllowed", True)),
        )

    def get_commit_sha(self, sha: str) -> Optional[str]:
        """Validate a (short) commit SHA and return its full form, or None."""
        try:
            response = self._send(
                "GET",
                self._repo_path(f"commits/{sha}"),
                headers={"Accept": "application/vnd.github.sha"},
            )
        except NotFoundError:
            return None
        except TransportError as exc:
            # 422: "No commit found for SHA"
            if exc.status_code == 422:
                return None
            raise
        return response.text.strip() or None

    def resolve_expression(self, expression: str) -> Optional[str]:
        """Resolve a revision expression (branch, tag, ``main~1``) to a commit SHA."""
        data = self.graphql(_RESOLVE_QUERY, self._repo_vars(expression=expression))
        obj = (data.get("repository") or {}).get("object")
        return _peel_commit(obj)

    def _get_blob(self, revision: str, path: str) -> Optional[Dict[str, Any]]:
        data = self.graphql(_BLOB_QUERY, self._repo_vars(expression=f"{revision}:{path}"))
        obj = (data.get("repository") or {}).get("object")
        if not obj or obj.get("__typename") != "Blob":
            return None
        return obj

    def get_file_hash(self, revision: str, path: str) -> Optional[str]:
        """Return the blob SHA of ``path`` at ``revision``, or None if absent."""
        blob = self._get_blob(revision, path)
        return blob.get("oid") if blob else None

    def get_file_content(self, revision: str, path: str) -> Optional[bytes]:
        """Return the text content of ``path`` at ``revision``.

        Raises:
            TransportError: if the blob is binary (its text is not available)
        """
        blob = self._get_blob(revision, path)
        if blob is None:
            return None
        if blob.get("isBinary"):
            raise TransportError(f"{revision}:{path} is a binary file; only text files can be copied")
        return (blob.get("text") or "").encode("utf-8")

    def get_ref(self, ref: str) -> Optional[GitRef]:
        """Read a ref (``refs/heads/x`` or ``heads/x``); None if it does not exist."""
        short = ref[len("refs/"):] if ref.startswith("refs/") else ref
        try:
            data = self._rest("GET", f"git/ref/{quote(short, safe='/')}")
        except NotFoundError:
            return None
        # git/ref/<prefix> can answer with a list of partial matches
        if isinstance(data, list):
            return None
        obj = data.get("object") or {}
        kind = RefKind.TAG if obj.get("type") == "tag" else RefKind.COMMIT
        return GitRef(ref=data.get("ref", f"refs/{short}"), sha=obj.get("sha", ""), kind=kind)

    def get_tag(self, name: str) -> Optional[TagObject]:
        """Inspect a tag ref and peel it, distinguishing lightweight from annotated."""
        ref = self.get_ref(f"refs/tags/{name}")
        if ref is None:
            return None
        if ref.kind == RefKind.COMMIT:
            return TagObject(name=name, lightweight=True, target_sha=ref.sha)
        data = self._rest("GET", f"git/tags/{ref.sha}")
        target = data.get("object") or {}
        target_sha = target.get("sha", "")
        # Tag of a tag: follow the chain to the commit
        while target.get("type") == "tag":
            data = self._rest("GET", f"git/tags/{target_sha}")
            target = data.get("object") or {}
            target_sha = target.get("sha", "")
        return TagObject(name=name, lightweight=False, target_sha=target_sha, annotation_sha=ref.sha)

    def list_matching_refs(self, prefix: str, sha: str) -> List[str]:
        """Names of refs under ``prefix`` (e.g. ``refs/heads/``) whose peeled target is ``sha``."""
        names: List[str] = []
        cursor: Optional[str] = None
        while True:
            data = self.graphql(_REFS_QUERY, self._repo_vars(prefix=prefix, cursor=cursor))
            refs = (data.get("repository") or {}).get("refs") or {}
            for node in refs.get("nodes") or []:
                if _peel_commit(node.get("target")) == sha:
                    names.append(node["name"])
            page = refs.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                return names
            cursor = page.get("endCursor")

    def find_pull_request(self, head: str, base: str) -> Optional[PullRequestRef]:
        """Return the first open, same-repository PR from head to base."""
        data = self.graphql(_FIND_PULL_REQUEST_QUERY, self._repo_vars(head=head, base=base))
        nodes = (((data.get("repository") or {}).get("pullRequests") or {}).get("nodes")) or []
        for node in nodes:
            if not node.get("isCrossRepository"):
                return PullRequestRef(
                    number=int(node["number"]),
                    url=node.get("url") or "",
                    node_id=node.get("id") or "",
                    title=node.get("title") or "",
                    draft=bool(node.get("isDraft")),
                )
        return None

    def list_deployments(self, sha: str, environment: str) -> List[Deployment]:
        data = self._rest("GET", "deployments", params={"sha": sha, "environment": environment})
        return [
            Deployment(id=int(d["id"]), sha=d.get("sha", sha), environment=d.get("environment", environment))
            for d in data or []
        ]

    def commit_url(self, sha: str) -> str:
        return f"{self.web_url}/{self.repository}/commit/{sha}"

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_ref(self, ref: str, sha: str) -> GitRef:
        log_debug("creating ref", ref=ref, sha=sha)
        data = self._rest("POST", "git/refs", json={"ref": ref, "sha": sha})
        return GitRef(ref=data.get("ref", ref), sha=(data.get("object") or {}).get("sha", sha))

    def update_ref(self, ref: str, sha: str, force: bool = False) -> GitRef:
        log_debug("updating ref", ref=ref, sha=sha, force=force)
        short = ref[len("refs/"):] if ref.startswith("refs/") else ref
        data = self._rest(
            "PATCH", f"git/refs/{quote(short, safe='/')}", json={"sha": sha, "force": force}
        )
        return GitRef(ref=data.get("ref", ref), sha=(data.get("object") or {}).get("sha", sha))

    def delete_ref(self, ref: str) -> None:
        log_debug("deleting ref", ref=ref)
        short = ref[len("refs/"):] if ref.startswith("refs/") else ref
        self._rest("DELETE", f"git/refs/{quote(short, safe='/')}")

    def create_tag_object(self, name: str, message: str, sha: str) -> str:
        """Create an annotated tag object pointing at commit ``sha``; return its SHA."""
        log_debug("creating tag object", tag=name, sha=sha)
        data = self._rest(
            "POST",
            "git/tags",
            json={"tag": name, "message": message, "object": sha, "type": "commit"},
        )
        return data["sha"]

    def create_commit_on_branch(
        self,
        branch: str,
        expected_head: str,
        additions: Dict[str, bytes],
        deletions: List[str],
        headline: str,
        body: Optional[str] = None,
    ) -> Tuple[str, str]:
        """Create one commit on ``branch``; return (sha, url).

        Raises:
            ConcurrencyConflictError: if ``branch`` no longer points at ``expected_head``
        """
        message: Dict[str, str] = {"headline": headline}
        if body:
            message["body"] = body
        variables = {
            "input": {
                "branch": {
                    "repositoryNameWithOwner": str(self.repository),
                    "branchName": short_ref_name(branch),
                },
                "message": message,
                "expectedHeadOid": expected_head,
                "fileChanges": {
                    "additions": [
                        {"path": path, "contents": base64.b64encode(content).decode("ascii")}
                        for path, content in sorted(additions.items())
                    ],
                    "deletions": [{"path": path} for path in sorted(deletions)],
                },
            }
        }
        try:
            data = self.graphql(_CREATE_COMMIT_MUTATION, variables)
        except GraphQLError as exc:
            if "STALE_DATA" in exc.types or "expected branch to point to" in str(exc).lower():
                raise ConcurrencyConflictError(branch, expected_head, str(exc)) from exc
            raise
        commit = (data.get("createCommitOnBranch") or {}).get("commit") or {}
        return commit.get("oid", ""), commit.get("url", "")

    def create_pull_request(self, pr: PullRequestState) -> PullRequestState:
        """Open ``pr`` and fill in its node id, number and url."""
        data = self.graphql(
            _CREATE_PULL_REQUEST_MUTATION,
            {
                "input": {
                    "repositoryId": pr.repo_node_id,
                    "headRefName": pr.head,
                    "baseRefName": pr.base,
                    "title": pr.title,
                    "body": pr.body,
                    "draft": pr.draft,
                }
            },
        )
        created = (data.get("createPullRequest") or {}).get("pullRequest") or {}
        pr.node_id = created.get("id")
        pr.number = created.get("number")
        pr.url = created.get("url")
        return pr

    def enable_auto_merge(self, pr_node_id: str, mode: AutoMergeMode) -> None:
        self.graphql(
            _ENABLE_AUTO_MERGE_MUTATION,
            {"input": {"pullRequestId": pr_node_id, "mergeMethod": mode.graphql_method}},
        )

    def create_deployment(
        self,
        ref: str,
        environment: str,
        description: str = "",
        transient: bool = False,
        production: bool = False,
    ) -> Deployment:
        data = self._rest(
            "POST",
            "deployments",
            json={
                "ref": ref,
                "environment": environment,
                "description": description,
                "transient_environment": transient,
                "production_environment": production,
                "auto_merge": False,
                "required_contexts": [],
            },
        )
        return Deployment(id=int(data["id"]), sha=data.get("sha", ""), environment=environment)

    def create_deployment_status(
        self,
        deployment_id: int,
        state: str,
        description: str = "",
        environment: str = "",
        environment_url: str = "",
    ) -> int:
        payload: Dict[str, Any] = {"state": state, "description": description}
        if environment:
            payload["environment"] = environment
        if environment_url:
            payload["environment_url"] = environment_url
        data = self._rest("POST", f"deployments/{deployment_id}/statuses", json=payload)
        return int(data["id"])
