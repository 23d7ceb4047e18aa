"""Generic ref updater: point arbitrary refs at a resolved commit.

Each target gets its own ``RefMutationReport``; a conflict or API failure on
one target is recorded on that target and the batch continues. Under the
immutable policy a diverged ref is never touched and the divergence is
recorded as an ``ImmutableRefSkip`` so callers can tell it from a failure.
"""

from __future__ import annotations

from typing import List, Optional

from .errors import (
    AuthenticationError,
    GhsyncError,
    ImmutableRefSkip,
    InputValidationError,
    ResolutionError,
)
from .models import (
    RefKind,
    RefMutationReport,
    SourceRef,
    UpdateRefReport,
    UpdateRefRequest,
)
from .observability import log_action, log_warning
from .refs import ReferenceResolver, is_commit_hash, qualify_ref_name, short_ref_name


def check_policy(force: bool, immutable: bool) -> None:
    if force and immutable:
        raise InputValidationError("force and immutable are mutually exclusive")


class RefUpdater:
    def __init__(self, client, resolver: Optional[ReferenceResolver] = None):
        self.client = client
        self.resolver = resolver or ReferenceResolver(client)

    def _current_sha(self, ref: str) -> Optional[str]:
        """Current commit of ``ref`` (annotated tags peeled), or None if absent."""
        current = self.client.get_ref(ref)
        if current is None:
            return None
        if current.kind == RefKind.TAG and ref.startswith("refs/tags/"):
            tag = self.client.get_tag(short_ref_name(ref))
            if tag is not None:
                return tag.target_sha
        return current.sha

    def update(
        self,
        ref: str,
        sha: str,
        force: bool = False,
        immutable: bool = False,
        dry_run: bool = False,
    ) -> RefMutationReport:
        """Point fully-qualified ``ref`` at ``sha``.

        Raises:
            InputValidationError: force and immutable both set (no remote call made)
        """
        check_policy(force, immutable)
        report = RefMutationReport(ref=ref, sha=sha)

        current = self._current_sha(ref)
        if current is None:
            # Creation cannot diverge, so policy flags do not apply
            if dry_run:
                log_action("ref.create", outcome="dry-run", ref=ref, sha=sha)
            else:
                self.client.create_ref(ref, sha)
                log_action("ref.create", ref=ref, sha=sha)
            report.updated = True
            return report

        report.old_sha = current
        if current == sha:
            log_action("ref.update", outcome="noop", ref=ref, sha=sha, force=force)
            return report

        if immutable:
            skip = ImmutableRefSkip(ref, current, sha)
            log_warning(str(skip), ref=ref, old_sha=current, sha=sha)
            log_action("ref.update", outcome="skipped", ref=ref, old_sha=current, sha=sha)
            report.set_error(skip)
            return report

        if dry_run:
            log_action("ref.update", outcome="dry-run", ref=ref, old_sha=current, sha=sha, force=force)
        else:
            self.client.update_ref(ref, sha, force=force)
            log_action("ref.update", ref=ref, old_sha=current, sha=sha, force=force)
        report.updated = True
        return report

    def update_many(self, request: UpdateRefRequest, report: UpdateRefReport) -> UpdateRefReport:
        """Resolve ``request.source`` and update every target, collecting per-target results.

        Raises:
            InputValidationError: policy conflict or an invalid ref name, before any remote call
        """
        check_policy(request.force, request.immutable)
        if not request.targets:
            raise InputValidationError("at least one target ref is required")
        targets: List[str] = [qualify_ref_name(t, request.target_type) for t in request.targets]

        source = SourceRef(commitish=request.source)
        report.source = source
        if not is_commit_hash(request.source):
            source.ref = qualify_ref_name(request.source, request.source_type)
        sha = self.resolver.resolve_ref(source.ref or request.source, request.source_type)
        if not sha:
            err = ResolutionError(request.source)
            source.set_error(err)
            report.set_error(err)
            return report
        source.sha = sha

        for ref in targets:
            try:
                result = self.update(
                    ref,
                    sha,
                    force=request.force,
                    immutable=request.immutable,
                    dry_run=request.dry_run,
                )
            except AuthenticationError:
                raise
            except GhsyncError as exc:
                log_warning("ref update failed", ref=ref, error=str(exc))
                result = RefMutationReport(ref=ref, sha=sha, error=exc)
            report.target.append(result)
        return report
