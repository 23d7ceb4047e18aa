"""Commit applier: submit one atomic multi-file commit under an expected head."""

from __future__ import annotations

from dataclasses import dataclass

from .content import ContentDiff
from .observability import log_action, timeit
from .specs import split_commit_message


@dataclass
class CommitResult:
    sha: str
    updated: bool
    url: str = ""


class CommitApplier:
    def __init__(self, client):
        self.client = client

    def apply(
        self,
        branch: str,
        expected_head: str,
        diff: ContentDiff,
        message: str,
        allow_empty: bool = False,
        dry_run: bool = False,
    ) -> CommitResult:
        """Commit ``diff`` on top of ``expected_head``.

        An empty diff is a no-op unless ``allow_empty``. Dry-run reports
        ``updated=True`` with the unchanged head. A moved branch surfaces as
        ``ConcurrencyConflictError`` from the transport and is not retried.
        """
        if diff.is_empty and not allow_empty:
            log_action("commit", outcome="noop", branch=branch, sha=expected_head)
            return CommitResult(sha=expected_head, updated=False)

        if dry_run:
            log_action(
                "commit",
                outcome="dry-run",
                branch=branch,
                sha=expected_head,
                additions=sorted(diff.additions),
                deletions=diff.deletions,
            )
            return CommitResult(sha=expected_head, updated=True)

        parts = split_commit_message(message)
        with timeit(
            "commit",
            branch=branch,
            expected_head=expected_head,
            additions=len(diff.additions),
            deletions=len(diff.deletions),
        ) as info:
            sha, url = self.client.create_commit_on_branch(
                branch,
                expected_head,
                diff.additions,
                diff.deletions,
                parts["headline"],
                parts.get("body"),
            )
            info["sha"] = sha
        return CommitResult(sha=sha, updated=True, url=url)
