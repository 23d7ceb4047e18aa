"""High-level operations behind each CLI command.

Each ``run_*`` function takes an already-configured transport client and
explicit request values, drives the reconcilers, and returns exactly one
report. Expected failures (unresolvable commit-ish, conflicts, API errors)
are recorded on the report; input validation errors are raised so the CLI
can reject the invocation before anything is written.
"""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from .branch import BranchEnsurer
from .commit import CommitApplier
from .content import ChangeSet, compute_diff
from .errors import GhsyncError, InputValidationError, ResolutionError
from .models import (
    ContentReport,
    ContentRequest,
    DebugReport,
    DeploymentReport,
    ResolveReport,
    SourceRef,
    TagReport,
    TagRequest,
    UpdateRefReport,
    UpdateRefRequest,
)
from .observability import log_error, log_info, log_warning
from .pulls import PullRequestReconciler
from .refs import ReferenceResolver, validate_ref_name
from .specs import build_commit_message, split_commit_message
from .tags import TagReconciler
from .updateref import RefUpdater

DEPLOYMENT_STATES = ("success", "pending", "failure", "error", "in_progress", "queued", "inactive")

CopySpec = Tuple[Optional[str], str, str]


def _record_failure(report, exc: GhsyncError) -> None:
    log_error(str(exc), error_type=type(exc).__name__)
    report.set_error(exc)


def collect_copies(client, copies: Iterable[CopySpec], default_branch: str) -> ChangeSet:
    """Fetch copy sources from the remote into a change set.

    Raises:
        ResolutionError: a source file does not exist on its branch
        TransportError: a source is binary or cannot be read
    """
    changes = ChangeSet()
    for branch, source, target in copies:
        revision = branch or default_branch
        content = client.get_file_content(revision, source)
        if content is None:
            raise ResolutionError(f"{revision}:{source}", f"copy source {source!r} not found on {revision!r}")
        changes.add(target, content)
    return changes


def run_content(
    client,
    request: ContentRequest,
    local_changes: Optional[ChangeSet] = None,
    copies: Iterable[CopySpec] = (),
    explicit_changes: Optional[ChangeSet] = None,
) -> ContentReport:
    """Reconcile branch content, optionally opening a pull request.

    Change sets are layered in order: local working-tree changes, then
    remote copies, then explicit update/delete specs, so a later source
    wins for the same path.
    """
    validate_ref_name(request.branch)
    report = ContentReport(repository=str(client.repository))
    ensurer = BranchEnsurer(client)

    try:
        info = client.get_repository_info(request.branch)
        state = ensurer.ensure(
            info,
            request.branch,
            base=request.base,
            allow_create=request.create_branch,
            dry_run=request.dry_run,
        )
        report.sha = state.head_sha

        changes = ChangeSet()
        if local_changes:
            changes.merge(local_changes)
        copies = list(copies)
        if copies:
            changes.merge(collect_copies(client, copies, request.base or info.default_branch.name))
        if explicit_changes:
            changes.merge(explicit_changes)

        diff = compute_diff(client, changes, state.head_sha, force=request.force)
        result = CommitApplier(client).apply(
            request.branch,
            state.head_sha,
            diff,
            request.message,
            allow_empty=request.allow_empty,
            dry_run=request.dry_run,
        )
        report.sha = result.sha
        report.updated = result.updated

        if state.is_new and not result.updated:
            # Do not leave an empty branch behind
            if not request.dry_run:
                client.delete_ref(f"refs/heads/{request.branch}")
            log_info("no changes; removed newly created branch", branch=request.branch)
            return report

        pr = request.pull_request
        if pr is None or not pr.title:
            return report

        pr.repo_node_id = pr.repo_node_id or info.node_id
        pr.head = request.branch
        base_name, base_sha = ensurer.resolve_base(info, pr.base or request.base)
        pr.base = base_name
        if base_name == request.branch:
            log_warning("pull request base is the target branch; skipping pull request", branch=base_name)
            return report
        if not result.updated and report.sha == base_sha:
            log_info("branch is not ahead of base; skipping pull request", branch=request.branch, base=base_name)
            return report

        report.pull_request = pr
        try:
            PullRequestReconciler(client).ensure(pr, info, branch_is_new=state.is_new, dry_run=request.dry_run)
        except GhsyncError as exc:
            pr.set_error(exc)
            raise
    except InputValidationError:
        raise
    except GhsyncError as exc:
        _record_failure(report, exc)
    return report


def run_tag(client, request: TagRequest) -> TagReport:
    report = TagReport(
        repository=str(client.repository),
        tag=request.name,
        commitish=request.commitish,
        lightweight=request.lightweight,
    )
    try:
        TagReconciler(client).reconcile(request, report)
    except InputValidationError:
        raise
    except GhsyncError as exc:
        _record_failure(report, exc)
    return report


def run_update_ref(client, request: UpdateRefRequest) -> UpdateRefReport:
    report = UpdateRefReport(repository=str(client.repository), source=SourceRef(commitish=request.source))
    try:
        RefUpdater(client).update_many(request, report)
    except InputValidationError:
        raise
    except GhsyncError as exc:
        _record_failure(report, exc)
    return report


def run_resolve(client, commitish: str, branches: bool = False, tags: bool = False) -> ResolveReport:
    """Resolve ``commitish`` and optionally list branches/tags whose tip is that commit."""
    report = ResolveReport(repository=str(client.repository), commitish=commitish)
    try:
        sha = ReferenceResolver(client).resolve(commitish)
        if not sha:
            raise ResolutionError(commitish)
        report.sha = sha
        if branches:
            report.branches = client.list_matching_refs("refs/heads/", sha)
        if tags:
            report.tags = client.list_matching_refs("refs/tags/", sha)
    except GhsyncError as exc:
        _record_failure(report, exc)
    return report


def run_deployment(
    client,
    environment: str,
    commitish: str = "",
    state: str = "success",
    description: str = "",
    environment_url: str = "",
    transient: bool = False,
    production: bool = False,
    dry_run: bool = False,
) -> DeploymentReport:
    """Record a deployment status, reusing an existing deployment for the same commit and environment."""
    if not environment:
        raise InputValidationError("environment is required")
    if state not in DEPLOYMENT_STATES:
        raise InputValidationError(f"invalid deployment state {state!r}; expected one of {', '.join(DEPLOYMENT_STATES)}")

    report = DeploymentReport(environment=environment, commitish=commitish, state=state)
    try:
        if commitish:
            sha = ReferenceResolver(client).resolve(commitish)
            if not sha:
                raise ResolutionError(commitish)
        else:
            info = client.get_repository_info()
            report.commitish = info.default_branch.name
            sha = info.default_branch.head_sha
        report.sha = sha
        report.url = client.commit_url(sha)

        if dry_run:
            log_info("dry-run: skipping deployment and status", environment=environment, sha=sha, state=state)
            return report

        existing = client.list_deployments(sha, environment)
        if existing:
            deployment = existing[0]
            log_info("using existing deployment", deployment_id=deployment.id)
        else:
            deployment = client.create_deployment(sha, environment, description, transient, production)
            report.created = True
            log_info("created deployment", deployment_id=deployment.id, environment=environment)
        report.deployment_id = deployment.id

        report.status_id = client.create_deployment_status(
            deployment.id, state, description, environment, environment_url
        )
    except GhsyncError as exc:
        _record_failure(report, exc)
    return report


def run_debug(
    repository,
    branch: str,
    has_token: bool,
    message: str,
    trailers: Iterable[str] = (),
    local=None,
) -> DebugReport:
    """Describe the resolved invocation context without calling the API."""
    trailers = list(trailers)
    report = DebugReport(
        remote=str(repository) if repository else "",
        has_token=has_token,
        branch=branch,
        message=split_commit_message(build_commit_message(message, trailers)),
        trailers=trailers,
    )
    if local is not None:
        report.commit = local.head_sha()
        report.clean = local.is_clean()
    return report
