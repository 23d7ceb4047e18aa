"""Tag reconciler.

Per tag name the remote is in one of two states, absent or present; a present
tag is compared by peeled target commit *and* kind (lightweight vs
annotated), where the kind is read from the object the ref points at rather
than from any client-side flag.

    absent                          -> create
    present, same target and kind   -> no-op
    present, differs, no force      -> TagConflictError
    present, differs, force         -> repoint (new annotation object first
                                       for annotated tags)
"""

from __future__ import annotations

from typing import Optional

from .errors import InputValidationError, ResolutionError, TagConflictError
from .models import TagObject, TagReport, TagRequest
from .observability import log_action, log_debug
from .refs import ReferenceResolver, qualify_ref_name, short_ref_name


class TagReconciler:
    def __init__(self, client, resolver: Optional[ReferenceResolver] = None):
        self.client = client
        self.resolver = resolver or ReferenceResolver(client)

    def _ref_target(self, request: TagRequest, sha: str) -> str:
        """Create the annotation object if needed; return what the ref should point at."""
        if request.lightweight:
            return sha
        return self.client.create_tag_object(request.name, request.message, sha)

    def reconcile(self, request: TagRequest, report: TagReport) -> TagReport:
        """Bring tag ``request.name`` to ``request.commitish``, filling ``report``.

        Raises:
            InputValidationError: bad tag name, or annotated tag without a message
            ResolutionError: commit-ish does not resolve
            TagConflictError: tag exists elsewhere (or as the other kind) and force is off
        """
        ref = qualify_ref_name(request.name, "tags")
        if not ref.startswith("refs/tags/"):
            raise InputValidationError(f"{request.name!r} is not a tag name")
        request.name = short_ref_name(ref)
        if not request.lightweight and not request.message:
            raise InputValidationError("annotated tags require a non-empty message")

        sha = self.resolver.resolve(request.commitish)
        if not sha:
            raise ResolutionError(request.commitish)
        report.tag = request.name
        report.sha = sha
        report.lightweight = request.lightweight
        report.url = self.client.commit_url(sha)

        existing: Optional[TagObject] = self.client.get_tag(request.name)
        if existing is None:
            self._create(request, ref, sha)
            report.updated = True
            return report

        log_debug(
            "tag exists",
            tag=request.name,
            kind=existing.kind,
            sha=existing.target_sha,
        )
        if existing.target_sha == sha and existing.lightweight == request.lightweight:
            log_action("tag", outcome="noop", tag=request.name, sha=sha)
            return report

        if not request.force:
            raise TagConflictError(request.name, existing.target_sha, existing.kind)

        if request.dry_run:
            log_action("tag.update", outcome="dry-run", tag=request.name, old_sha=existing.target_sha, sha=sha)
        else:
            self.client.update_ref(ref, self._ref_target(request, sha), force=True)
            log_action("tag.update", tag=request.name, old_sha=existing.target_sha, sha=sha)
        report.updated = True
        return report

    def _create(self, request: TagRequest, ref: str, sha: str) -> None:
        if request.dry_run:
            log_action("tag.create", outcome="dry-run", tag=request.name, sha=sha)
            return
        self.client.create_ref(ref, self._ref_target(request, sha))
        log_action("tag.create", tag=request.name, sha=sha, lightweight=request.lightweight)
