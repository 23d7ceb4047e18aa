"""Data model for remote reconciliation.

All records are built fresh per invocation from query results; nothing is
cached across runs. Report records serialize through ``to_dict`` which drops
unset optional fields so the encoded output stays compact.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class AutoMergeMode(str, Enum):
    """Auto-merge method requested for a pull request."""

    OFF = "off"
    MERGE = "merge"
    SQUASH = "squash"
    REBASE = "rebase"

    @property
    def graphql_method(self) -> str:
        """PullRequestMergeMethod enum value expected by the GraphQL API."""
        return self.value.upper()


class RefKind(str, Enum):
    """Object type a ref points at."""

    COMMIT = "commit"
    TAG = "tag"


@dataclass(frozen=True)
class RepositoryRef:
    """Identifies a remote repository."""

    owner: str
    name: str

    def __str__(self) -> str:
        return f"{self.owner}/{self.name}"

    @classmethod
    def from_slug(cls, slug: str) -> "RepositoryRef":
        owner, _, name = slug.strip("/").partition("/")
        if not owner or not name or "/" in name:
            raise ValueError(f"invalid repository slug {slug!r}; expected owner/name")
        return cls(owner=owner, name=name)


@dataclass
class BranchState:
    """A named moving pointer; an empty head means the branch does not exist."""

    name: str
    head_sha: str = ""
    is_new: bool = False

    @property
    def exists(self) -> bool:
        return bool(self.head_sha)


@dataclass
class RepositoryInfo:
    """Repository metadata decoded from a single GraphQL query."""

    node_id: str
    is_empty: bool
    default_branch: BranchState
    target_branch: BranchState
    auto_merge_allowed: bool = False
    merge_commit_allowed: bool = True
    squash_merge_allowed: bool = True
    rebase_merge_allowed: bool = True

    def supports_merge_method(self, mode: AutoMergeMode) -> bool:
        return {
            AutoMergeMode.MERGE: self.merge_commit_allowed,
            AutoMergeMode.SQUASH: self.squash_merge_allowed,
            AutoMergeMode.REBASE: self.rebase_merge_allowed,
        }.get(mode, False)

    def supported_auto_merge_methods(self) -> List[str]:
        if not self.auto_merge_allowed:
            return []
        return [
            mode.value
            for mode in (AutoMergeMode.MERGE, AutoMergeMode.SQUASH, AutoMergeMode.REBASE)
            if self.supports_merge_method(mode)
        ]


@dataclass(frozen=True)
class GitRef:
    """A ref as read from the remote: its name and the object it points at."""

    ref: str
    sha: str
    kind: RefKind = RefKind.COMMIT


@dataclass(frozen=True)
class TagObject:
    """A tag, lightweight (ref -> commit) or annotated (ref -> tag object -> commit)."""

    name: str
    lightweight: bool
    target_sha: str
    annotation_sha: Optional[str] = None

    @property
    def kind(self) -> str:
        return "lightweight" if self.lightweight else "annotated"


@dataclass(frozen=True)
class PullRequestRef:
    """An open pull request found on the remote."""

    number: int
    url: str
    node_id: str
    title: str = ""
    draft: bool = False


@dataclass
class Deployment:
    id: int
    sha: str
    environment: str


# ---------------------------------------------------------------------------
# Requests: explicit inputs handed to the reconcilers
# ---------------------------------------------------------------------------


@dataclass
class ContentRequest:
    """Desired state for a content operation."""

    branch: str
    message: str
    base: Optional[str] = None
    create_branch: bool = True
    force: bool = False
    dry_run: bool = False
    allow_empty: bool = False
    pull_request: Optional["PullRequestState"] = None


@dataclass
class TagRequest:
    name: str
    commitish: str
    message: str = ""
    lightweight: bool = False
    force: bool = False
    dry_run: bool = False


@dataclass
class UpdateRefRequest:
    source: str
    targets: List[str]
    source_type: str = "heads"
    target_type: str = "tags"
    force: bool = False
    immutable: bool = False
    dry_run: bool = False


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def _encode(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, BaseException):
        return str(value)
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, list):
        return [_encode(v) for v in value]
    return value


class _ReportMixin:
    """Shared ``to_dict`` / error handling for report dataclasses.

    Fields listed in ``_always`` are emitted even when empty; everything else
    is omitted while it is ``None`` or an empty string/list.
    """

    _always: Tuple[str, ...] = ()
    _renames: Dict[str, str] = {}

    error: Optional[BaseException]

    def set_error(self, err: Optional[BaseException]) -> None:
        self.error = err

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if f.name not in self._always and value in (None, "", []):
                continue
            out[self._renames.get(f.name, f.name)] = _encode(value)
        return out


@dataclass
class PullRequestState(_ReportMixin):
    """A pull request between two branches of the same repository."""

    repo_node_id: str
    head: str
    base: str
    title: str
    body: str = ""
    draft: bool = False
    auto_merge: AutoMergeMode = AutoMergeMode.OFF
    number: Optional[int] = None
    url: Optional[str] = None
    node_id: Optional[str] = None
    created: bool = False
    error: Optional[BaseException] = None

    _always = ("head", "base", "title", "draft", "auto_merge", "created")

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out.pop("repo_node_id", None)
        out.pop("node_id", None)
        out.pop("body", None)
        return out


@dataclass
class RefMutationReport(_ReportMixin):
    """Outcome for one ref touched by the generic ref updater."""

    ref: str
    old_sha: str = ""
    sha: str = ""
    updated: bool = False
    error: Optional[BaseException] = None

    _always = ("ref", "updated")

    @property
    def skipped(self) -> bool:
        """True when an immutable policy prevented the update."""
        from .errors import ImmutableRefSkip

        return isinstance(self.error, ImmutableRefSkip)

    @property
    def failed(self) -> bool:
        return self.error is not None and not self.skipped

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.skipped:
            out["skipped"] = True
        return out


@dataclass
class ContentReport(_ReportMixin):
    repository: str
    sha: str = ""
    updated: bool = False
    pull_request: Optional[PullRequestState] = None
    error: Optional[BaseException] = None

    _always = ("sha", "updated")
    _renames = {"pull_request": "pullrequest"}


@dataclass
class TagReport(_ReportMixin):
    repository: str
    tag: str
    commitish: str
    sha: str = ""
    url: str = ""
    lightweight: bool = False
    updated: bool = False
    error: Optional[BaseException] = None

    _always = ("tag", "commitish", "lightweight", "updated")


@dataclass
class SourceRef(_ReportMixin):
    commitish: str
    ref: str = ""
    sha: str = ""
    error: Optional[BaseException] = None

    _always = ("commitish",)


@dataclass
class UpdateRefReport(_ReportMixin):
    repository: str
    source: SourceRef
    target: List[RefMutationReport] = field(default_factory=list)
    error: Optional[BaseException] = None

    _always = ("source", "target")

    @property
    def failed(self) -> bool:
        return self.error is not None or any(t.failed for t in self.target)


@dataclass
class ResolveReport(_ReportMixin):
    repository: str
    commitish: str
    sha: str = ""
    branches: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    _always = ("repository", "commitish")


@dataclass
class DeploymentReport(_ReportMixin):
    environment: str
    commitish: str
    sha: str = ""
    state: str = ""
    url: str = ""
    deployment_id: int = 0
    status_id: int = 0
    created: bool = False
    error: Optional[BaseException] = None

    _always = ("deployment_id", "status_id", "environment", "commitish", "sha", "state", "url", "created")


@dataclass
class DebugReport(_ReportMixin):
    remote: str
    has_token: bool
    branch: str
    commit: str = ""
    clean: bool = False
    message: Dict[str, str] = field(default_factory=dict)
    trailers: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    _always = ("remote", "has_token", "branch", "clean", "message")
