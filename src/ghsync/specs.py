"""File-spec parsing and commit message assembly.

Update specs name a local file and optionally the remote path it lands at
(``local[:remote]``); copy specs name a remote file to copy, optionally from
another branch (``[branch:]source:target``); delete specs are bare remote
paths. Remote paths are cleaned before use.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional, Tuple

from .content import clean_path
from .errors import FileSpecError, InputValidationError, RefNameError
from .refs import validate_ref_name

DEFAULT_SEPARATOR = ":"


def _check_separator(separator: str) -> None:
    if not separator:
        raise InputValidationError("invalid separator: must not be empty")


def parse_update_spec(spec: str, separator: str = DEFAULT_SEPARATOR) -> Tuple[str, str]:
    """Split ``local[<sep>remote]`` into (source, target).

    The local source keeps its absolute or relative form; only the remote
    target is cleaned into a repository path.
    """
    _check_separator(separator)
    parts = spec.split(separator, 1)
    source = parts[0]
    target = parts[1] if len(parts) == 2 else parts[0]

    problems: List[str] = []
    if not source:
        problems.append("empty source")
    if not target:
        problems.append("empty target")
    if problems:
        raise FileSpecError(spec, problems)

    return os.path.normpath(source), clean_path(target)


def parse_copy_spec(
    spec: str, separator: str = DEFAULT_SEPARATOR
) -> Tuple[Optional[str], str, str]:
    """Split ``[branch<sep>]source<sep>target`` into (branch, source, target).

    ``branch`` is None when not given; callers default it to the base branch.
    """
    _check_separator(separator)
    parts = spec.split(separator)
    problems: List[str] = []
    branch: Optional[str] = None
    source = target = ""

    if len(parts) == 2:
        source, target = parts
    elif len(parts) == 3:
        branch, source, target = parts
        try:
            validate_ref_name(branch)
        except RefNameError as exc:
            problems.append(f"invalid branch: {exc.rule}")
    else:
        problems.append("expected [branch:]source:target")

    if len(parts) in (2, 3):
        if not source:
            problems.append("empty source")
        if not target:
            problems.append("empty target")
        if source and target and clean_path(source) == clean_path(target):
            problems.append("source and target are the same")

    if problems:
        raise FileSpecError(spec, problems)

    return branch, clean_path(source), clean_path(target)


def build_trailers(
    user_trailer: str = "",
    user_name: str = "",
    user_email: str = "",
    extra: Optional[Dict[str, str]] = None,
) -> List[str]:
    """Return commit trailer lines: the author trailer first, then extras sorted by key."""
    trailers: List[str] = []
    if user_trailer and user_name and user_email:
        trailers.append(f"{user_trailer}: {user_name} <{user_email}>")
    for key in sorted(extra or {}):
        trailers.append(f"{key}: {extra[key]}")  # type: ignore[index]
    return trailers


def build_commit_message(message: str, trailers: Optional[List[str]] = None) -> str:
    """Append trailers to message, separated by a blank line."""
    if not trailers:
        return message
    separator = "\n\n" if message else "\n"
    return message + separator + "\n".join(trailers)


def split_commit_message(message: str) -> Dict[str, str]:
    """Split a message into the headline/body shape used by createCommitOnBranch."""
    headline, _, body = message.partition("\n")
    result = {"headline": headline}
    body = body.lstrip("\n")
    if body:
        result["body"] = body
    return result
