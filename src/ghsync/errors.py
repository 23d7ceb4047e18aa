"""Error taxonomy shared by the reconcilers, the transport and the CLI.

The hierarchy mirrors how failures are handled:

* ``InputValidationError`` - malformed input detected before any remote
  call; the whole command fails immediately.
* ``ResolutionError`` - a commit-ish or ref does not resolve. Expected,
  reported in the structured output.
* ``ConflictError`` - remote state disagrees with the request (existing tag
  at another commit, branch moved under an expected head).
* ``ImmutableRefSkip`` - an immutable ref diverged; nothing was mutated.
  Non-fatal.
* ``TransportError`` - authentication, network or API failures. Fatal for
  the current operation.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class GhsyncError(Exception):
    """Base class for all ghsync errors."""


class InputValidationError(GhsyncError):
    """Raised for invalid user input (ref names, file specs, flags)."""


class RefNameError(InputValidationError):
    """Raised when a ref name violates git's reference-name grammar."""

    def __init__(self, name: str, rule: str):
        self.name = name
        self.rule = rule
        super().__init__(f"invalid ref name {name!r}: {rule}")


class FileSpecError(InputValidationError):
    """Raised when one or more file specs cannot be parsed."""

    def __init__(self, spec: str, problems: List[str]):
        self.spec = spec
        self.problems = problems
        super().__init__(f"{spec!r}: {'; '.join(problems)}")


class ResolutionError(GhsyncError):
    """Raised when a commit-ish or ref does not resolve to an object."""

    def __init__(self, commitish: str, message: Optional[str] = None):
        self.commitish = commitish
        super().__init__(message or f"commitish {commitish!r} does not exist")


class ConflictError(GhsyncError):
    """Raised when remote state conflicts with the requested state."""


class TagConflictError(ConflictError):
    """Raised when a tag exists with a different target or kind and force is not set."""

    def __init__(self, tag: str, existing_sha: str, existing_kind: str):
        self.tag = tag
        self.existing_sha = existing_sha
        self.existing_kind = existing_kind
        super().__init__(
            f"tag {tag!r} already exists ({existing_kind}) at {existing_sha}"
        )


class ConcurrencyConflictError(ConflictError):
    """Raised when the remote rejects a commit because the branch head moved."""

    def __init__(self, branch: str, expected_sha: str, detail: str = ""):
        self.branch = branch
        self.expected_sha = expected_sha
        message = f"branch {branch!r} no longer points at expected head {expected_sha}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class ImmutableRefSkip(GhsyncError):
    """Raised (or recorded) when an immutable ref already points elsewhere."""

    def __init__(self, ref: str, current_sha: str, desired_sha: str):
        self.ref = ref
        self.current_sha = current_sha
        self.desired_sha = desired_sha
        super().__init__(
            f"immutable ref {ref!r} points at {current_sha}, not updating to {desired_sha}"
        )


class TransportError(GhsyncError):
    """Raised for failures talking to the GitHub API."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(TransportError):
    """Raised when the API rejects the access token."""


class RateLimitError(TransportError):
    """Raised when rate-limit retries are exhausted."""


class NotFoundError(TransportError):
    """Raised when a REST resource does not exist."""


class GraphQLError(TransportError):
    """Raised when a GraphQL response carries errors."""

    def __init__(self, errors: List[Dict[str, Any]]):
        self.errors = errors
        messages = [str(e.get("message", e)) for e in errors] or ["unknown GraphQL error"]
        super().__init__("; ".join(messages))

    @property
    def types(self) -> List[str]:
        return [str(e.get("type", "")) for e in self.errors]
