"""Reference resolution and ref-name handling.

Commit-ish inputs come in two flavours: literal hex SHAs (7-40 lowercase hex
characters) resolved through a direct commit lookup, and symbolic expressions
(branch, tag, ``main~1``) resolved through the GraphQL expression API. A
failed resolution is returned as ``None`` rather than raised; callers decide
how to report it.
"""

from __future__ import annotations

import re
from typing import Optional

from .errors import RefNameError
from .observability import log_debug

COMMIT_HASH_RE = re.compile(r"^[0-9a-f]{7,40}$")

REF_TYPES = ("heads", "tags")

# ASCII control characters, DEL, space and ~^:?*[\
_FORBIDDEN_CHARS_RE = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]")


def is_commit_hash(value: str) -> bool:
    """Return True if value looks like a (possibly abbreviated) commit SHA."""
    return bool(COMMIT_HASH_RE.match(value or ""))


def validate_ref_name(name: str) -> None:
    """Check name against git's reference-name rules.

    Raises:
        RefNameError: naming the first rule the name violates
    """
    if not name:
        raise RefNameError(name, "must not be empty")
    if name == "@":
        raise RefNameError(name, "must not be '@'")
    if name.startswith("/"):
        raise RefNameError(name, "must not begin with '/'")
    if name.endswith("/"):
        raise RefNameError(name, "must not end with '/'")
    if "//" in name:
        raise RefNameError(name, "must not contain consecutive slashes")
    if name.endswith("."):
        raise RefNameError(name, "must not end with '.'")
    if ".." in name:
        raise RefNameError(name, "must not contain '..'")
    if "@{" in name:
        raise RefNameError(name, "must not contain '@{'")
    match = _FORBIDDEN_CHARS_RE.search(name)
    if match:
        raise RefNameError(name, f"must not contain {match.group(0)!r}")
    for component in name.split("/"):
        if component.startswith("."):
            raise RefNameError(name, f"component {component!r} must not begin with '.'")
        if component.endswith(".lock"):
            raise RefNameError(name, f"component {component!r} must not end with '.lock'")


def qualify_ref_name(name: str, default_type: str = "heads") -> str:
    """Return the fully-qualified form (``refs/<type>/<name>``) of a ref name.

    ``refs/heads/x`` and ``heads/x`` are kept under their own type; bare names
    are placed under ``default_type``.

    Raises:
        RefNameError: if the name (or the default type) is invalid
    """
    if default_type not in REF_TYPES:
        raise RefNameError(name, f"unknown ref type {default_type!r}")

    short = name[len("refs/"):] if name.startswith("refs/") else name
    validate_ref_name(short)

    if short.split("/", 1)[0] in REF_TYPES and "/" in short:
        return f"refs/{short}"
    return f"refs/{default_type}/{short}"


def short_ref_name(ref: str) -> str:
    """Strip ``refs/heads/`` or ``refs/tags/`` from a qualified ref."""
    for prefix in ("refs/heads/", "refs/tags/", "refs/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


class ReferenceResolver:
    """Resolve commit-ish strings to canonical 40-character SHAs."""

    def __init__(self, client):
        self.client = client

    def resolve(self, commitish: str) -> Optional[str]:
        """Resolve ``commitish`` to a full SHA, or None if nothing matches."""
        if not commitish:
            return None
        if is_commit_hash(commitish):
            log_debug("resolving commit hash", commitish=commitish)
            sha = self.client.get_commit_sha(commitish)
        else:
            log_debug("resolving expression", commitish=commitish)
            sha = self.client.resolve_expression(commitish)
        return sha or None

    def resolve_ref(self, name: str, default_type: str = "heads") -> Optional[str]:
        """Resolve a literal SHA or a (possibly unqualified) ref name.

        Ref names are qualified first, so an invalid name raises RefNameError
        before any remote call.
        """
        if is_commit_hash(name):
            return self.resolve(name)
        return self.resolve(qualify_ref_name(name, default_type))
