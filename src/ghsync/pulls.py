"""Pull-request reconciler."""

from __future__ import annotations

from .errors import TransportError
from .models import AutoMergeMode, PullRequestState, RepositoryInfo
from .observability import log_action, log_warning


def negotiate_auto_merge(info: RepositoryInfo, mode: AutoMergeMode) -> AutoMergeMode:
    """Downgrade ``mode`` to OFF (with a warning) if the repository cannot honour it."""
    if mode == AutoMergeMode.OFF:
        return mode
    if not info.auto_merge_allowed:
        log_warning("auto-merge is disabled for this repository; continuing without it", requested=mode.value)
        return AutoMergeMode.OFF
    if not info.supports_merge_method(mode):
        log_warning(
            "auto-merge method not allowed; continuing without auto-merge",
            requested=mode.value,
            allowed=info.supported_auto_merge_methods(),
        )
        return AutoMergeMode.OFF
    return mode


class PullRequestReconciler:
    def __init__(self, client):
        self.client = client

    def ensure(
        self,
        pr: PullRequestState,
        info: RepositoryInfo,
        branch_is_new: bool = False,
        dry_run: bool = False,
    ) -> PullRequestState:
        """Find or open the PR from ``pr.head`` into ``pr.base``.

        An existing open PR is returned as found and reported with auto-merge
        off. Auto-merge is only negotiated and enabled for a PR created here;
        a failure to enable it is logged, not raised.
        """
        if not branch_is_new:
            existing = self.client.find_pull_request(pr.head, pr.base)
            if existing:
                pr.number = existing.number
                pr.url = existing.url
                pr.node_id = existing.node_id
                pr.draft = existing.draft
                pr.title = existing.title or pr.title
                pr.auto_merge = AutoMergeMode.OFF
                log_action("pull_request", outcome="noop", head=pr.head, base=pr.base, number=pr.number)
                return pr

        pr.auto_merge = negotiate_auto_merge(info, pr.auto_merge)

        if dry_run:
            log_action("pull_request.create", outcome="dry-run", head=pr.head, base=pr.base)
            return pr

        self.client.create_pull_request(pr)
        pr.created = True
        log_action("pull_request.create", head=pr.head, base=pr.base, number=pr.number, url=pr.url)

        if pr.auto_merge != AutoMergeMode.OFF and pr.node_id:
            try:
                self.client.enable_auto_merge(pr.node_id, pr.auto_merge)
            except TransportError as exc:
                log_warning("could not enable auto-merge", number=pr.number, error=str(exc))
                pr.auto_merge = AutoMergeMode.OFF
            else:
                log_action("pull_request.auto_merge", number=pr.number, method=pr.auto_merge.value)
        return pr
