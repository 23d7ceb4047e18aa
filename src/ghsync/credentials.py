"""Access-token resolution for ghsync.

Sources, first hit wins:

1. ``--token`` value: a path to a token file if such a file exists,
   otherwise the literal token
2. ``GHSYNC_TOKEN``, ``GH_TOKEN``, ``GITHUB_TOKEN`` environment variables
3. ``~/.ghsync/credentials.toml`` (``[github] token = "..."``)
4. ``gh auth token`` from the GitHub CLI, unless disabled

Tokens are never logged; only the name of the source is.
"""

from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path
from typing import Callable, Mapping, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from .errors import GhsyncError
from .observability import log_debug

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


CREDENTIALS_FILENAME = "credentials.toml"
USER_CONFIG_DIR = ".ghsync"
TOKEN_ENV_VARS = ("GHSYNC_TOKEN", "GH_TOKEN", "GITHUB_TOKEN")
GH_CLI_TIMEOUT = 10


class CredentialsError(GhsyncError):
    """Raised when no access token can be found or a token source is unreadable."""


class GitHubCredentials(BaseModel):
    """GitHub authentication credentials."""

    token: str = Field(
        default="",
        description="GitHub personal access token",
    )


class Credentials(BaseModel):
    github: GitHubCredentials = Field(default_factory=GitHubCredentials)


def get_user_credentials_path() -> Path:
    return Path.home() / USER_CONFIG_DIR / CREDENTIALS_FILENAME


def load_credentials(path: Optional[Path] = None) -> Credentials:
    """Load the credentials file; a missing file yields empty credentials.

    Raises:
        CredentialsError: if the file exists but is not valid TOML or does
            not match the schema
    """
    path = path or get_user_credentials_path()
    if not path.exists():
        return Credentials()
    try:
        with open(path, "rb") as f:
            data = tomllib.load(f)
        return Credentials.model_validate(data)
    except (tomllib.TOMLDecodeError, ValidationError, OSError) as e:
        raise CredentialsError(f"Error loading credentials from {path}: {e}") from e


def _read_token_value(value: str) -> str:
    candidate = Path(value).expanduser()
    try:
        if candidate.is_file():
            return candidate.read_text(encoding="utf-8").strip()
    except OSError as e:
        raise CredentialsError(f"Cannot read token file {candidate}: {e}") from e
    return value.strip()


def _gh_cli_token(runner: Callable[..., subprocess.CompletedProcess]) -> str:
    try:
        result = runner(
            ["gh", "auth", "token"],
            capture_output=True,
            text=True,
            timeout=GH_CLI_TIMEOUT,
            check=False,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return ""
    if result.returncode != 0:
        return ""
    return (result.stdout or "").strip()


def find_token(
    explicit: Optional[str] = None,
    *,
    env: Optional[Mapping[str, str]] = None,
    credentials_path: Optional[Path] = None,
    allow_cli: bool = True,
    runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
) -> Tuple[str, str]:
    """Return (token, source name), or ("", "") if no source has one."""
    env = os.environ if env is None else env

    if explicit:
        return _read_token_value(explicit), "--token"

    for name in TOKEN_ENV_VARS:
        if env.get(name):
            return env[name].strip(), name

    creds = load_credentials(credentials_path)
    if creds.github.token:
        return creds.github.token.strip(), "credentials.toml"

    if allow_cli:
        token = _gh_cli_token(runner)
        if token:
            return token, "gh auth token"

    return "", ""


def resolve_token(explicit: Optional[str] = None, **kwargs) -> str:
    """Like ``find_token`` but raises if no token is available.

    Raises:
        CredentialsError: no source yielded a token
    """
    token, source = find_token(explicit, **kwargs)
    if not token:
        raise CredentialsError(
            "No GitHub token found. Pass --token, set GHSYNC_TOKEN/GH_TOKEN/GITHUB_TOKEN, "
            f"add [github] token to {get_user_credentials_path()}, or log in with `gh auth login`."
        )
    log_debug("using token", source=source)
    return token
