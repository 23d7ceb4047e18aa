"""Branch ensurer: make sure the target branch exists before committing."""

from __future__ import annotations

from typing import Optional, Tuple

from .errors import GhsyncError, ResolutionError
from .models import BranchState, RepositoryInfo
from .observability import log_action, log_info
from .refs import ReferenceResolver, validate_ref_name


class BranchMissingError(GhsyncError):
    """Raised when the target branch is absent and creation is not allowed."""

    def __init__(self, branch: str):
        self.branch = branch
        super().__init__(f"branch {branch!r} does not exist")


class EmptyRepositoryError(GhsyncError):
    """Raised when the repository has no commits to branch from."""


class BranchEnsurer:
    """Return the head of a branch, creating it from a base when needed."""

    def __init__(self, client, resolver: Optional[ReferenceResolver] = None):
        self.client = client
        self.resolver = resolver or ReferenceResolver(client)

    def resolve_base(self, info: RepositoryInfo, base: Optional[str] = None) -> Tuple[str, str]:
        """Return (name, sha) of the base, defaulting to the repository's default branch.

        Raises:
            ResolutionError: the base does not resolve
        """
        base = base or info.default_branch.name
        if base == info.default_branch.name and info.default_branch.exists:
            return base, info.default_branch.head_sha
        sha = self.resolver.resolve(base)
        if not sha:
            raise ResolutionError(base, f"base {base!r} does not exist")
        return base, sha

    def ensure(
        self,
        info: RepositoryInfo,
        branch: str,
        base: Optional[str] = None,
        allow_create: bool = True,
        dry_run: bool = False,
    ) -> BranchState:
        """Ensure ``branch`` exists.

        Args:
            info: Repository metadata queried for ``branch``
            branch: Target branch name (unqualified)
            base: Commit-ish to branch from; defaults to the default branch
            allow_create: Create the branch if it does not exist
            dry_run: Resolve the base but do not create the ref

        Returns:
            BranchState with the current head and ``is_new`` set when the
            branch was (or, in dry-run, would be) created in this call

        Raises:
            EmptyRepositoryError: the repository has no commits
            BranchMissingError: branch is absent and allow_create is False
            ResolutionError: the base commit-ish does not resolve
        """
        validate_ref_name(branch)
        if info.is_empty:
            raise EmptyRepositoryError(f"repository is empty; cannot use branch {branch!r}")

        if info.target_branch.exists and info.target_branch.name == branch:
            return BranchState(name=branch, head_sha=info.target_branch.head_sha)

        if not allow_create:
            raise BranchMissingError(branch)

        base, base_sha = self.resolve_base(info, base)

        if dry_run:
            log_action("branch.create", outcome="dry-run", branch=branch, sha=base_sha)
        else:
            self.client.create_ref(f"refs/heads/{branch}", base_sha)
            log_info("created branch", branch=branch, base=base, sha=base_sha)
            log_action("branch.create", branch=branch, sha=base_sha)
        return BranchState(name=branch, head_sha=base_sha, is_new=True)
