"""Configuration loading and merging for ghsync.

Handles TOML loading, config discovery, deep merging, and environment overlay.
There is no process-wide cached config: the CLI loads one ``GhsyncConfig``
per invocation and turns it into explicit request objects.
"""

from __future__ import annotations

import os
import sys
import warnings
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import tomlkit
from pydantic import ValidationError

from .config_schema import GhsyncConfig
from .errors import GhsyncError

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib


CONFIG_FILENAME = "config.toml"
USER_CONFIG_DIR = ".ghsync"
PROJECT_CONFIG_DIR = ".ghsync"

# GHSYNC_* variable -> (section, key); type conversion happens in pydantic
ENV_MAPPING: Dict[str, Tuple[str, str]] = {
    "GHSYNC_OWNER": ("repository", "owner"),
    "GHSYNC_REPO": ("repository", "name"),
    "GHSYNC_API_URL": ("api", "url"),
    "GHSYNC_GRAPHQL_URL": ("api", "graphql_url"),
    "GHSYNC_TIMEOUT": ("api", "timeout"),
    "GHSYNC_MAX_RETRIES": ("api", "max_retries"),
    "GHSYNC_HOST": ("api", "host"),
    "GHSYNC_NO_CLI_TOKEN": ("api", "no_cli_token"),
    "GHSYNC_CREATE_BRANCH": ("content", "create_branch"),
    "GHSYNC_SEPARATOR": ("content", "separator"),
    "GHSYNC_MESSAGE": ("content", "message"),
    "GHSYNC_USER_TRAILER": ("content", "user_trailer"),
    "GHSYNC_USER_NAME": ("content", "user_name"),
    "GHSYNC_USER_EMAIL": ("content", "user_email"),
    "GHSYNC_TAG_MESSAGE": ("tag", "message"),
    "GHSYNC_LIGHTWEIGHT": ("tag", "lightweight"),
    "GHSYNC_SOURCE_TYPE": ("update_ref", "source_type"),
    "GHSYNC_TARGET_TYPE": ("update_ref", "target_type"),
    "GHSYNC_DRAFT": ("pull_request", "draft"),
    "GHSYNC_AUTO_MERGE": ("pull_request", "auto_merge"),
    "GHSYNC_OUTPUT": ("output", "format"),
    "GHSYNC_COMPACT": ("output", "compact"),
    "GHSYNC_LOG_LEVEL": ("logging", "level"),
    "GHSYNC_LOG_DIR": ("logging", "dir"),
    "GHSYNC_LOG_MAX_BYTES": ("logging", "max_bytes"),
    "GHSYNC_LOG_BACKUP_COUNT": ("logging", "backup_count"),
}


class ConfigError(GhsyncError):
    """Configuration loading or validation error."""


def _get_user_config_dir() -> Path:
    """Get user-level config directory (~/.ghsync/)."""
    return Path.home() / USER_CONFIG_DIR


def _get_project_config_dir(project_path: Optional[Path] = None) -> Optional[Path]:
    """Get project-level config directory (.ghsync/).

    Searches upward from project_path to find a .ghsync/ directory. The
    user-level directory is never treated as a project directory.
    """
    if project_path is None:
        project_path = Path.cwd()

    if not project_path.is_absolute():
        project_path = project_path.resolve()

    user_dir = _get_user_config_dir()
    current = project_path
    while current != current.parent:
        config_dir = current / PROJECT_CONFIG_DIR
        if config_dir.is_dir() and config_dir != user_dir:
            return config_dir
        current = current.parent

    return None


def _load_toml(path: Path) -> Dict[str, Any]:
    """Load a TOML file.

    Raises:
        ConfigError: If file cannot be loaded or parsed
    """
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError:
        raise ConfigError(f"Config file not found: {path}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep merge two dictionaries.

    Override values take precedence. Nested dicts are merged recursively.
    Lists are replaced, not merged.
    """
    result = base.copy()

    for key, value in override.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def _set(config_dict: Dict[str, Any], section: str, key: str, value: Any) -> None:
    config_dict.setdefault(section, {})[key] = value


def _apply_env_overlay(
    config_dict: Dict[str, Any], env: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Apply environment variable overrides to config dict.

    The GitHub Actions variables ``GITHUB_REPOSITORY_OWNER`` and
    ``GITHUB_REPOSITORY`` are applied first so explicit ``GHSYNC_*``
    variables win over them.
    """
    env = os.environ if env is None else env
    result = _deep_merge({}, config_dict)

    if env.get("GITHUB_REPOSITORY_OWNER"):
        _set(result, "repository", "owner", env["GITHUB_REPOSITORY_OWNER"])
    slug = env.get("GITHUB_REPOSITORY", "")
    if "/" in slug:
        owner, name = slug.split("/", 1)
        _set(result, "repository", "owner", owner)
        _set(result, "repository", "name", name)

    for env_var, (section, key) in ENV_MAPPING.items():
        value = env.get(env_var)
        if value is None:
            continue
        _set(result, section, key, value)

    return result


def get_config_paths(
    project_path: Optional[Path] = None, config_file: Optional[Path] = None
) -> List[Path]:
    """Config files that would be read, lowest precedence first."""
    paths: List[Path] = []
    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        paths.append(user_config_path)
    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir and (project_config_dir / CONFIG_FILENAME).exists():
        paths.append(project_config_dir / CONFIG_FILENAME)
    if config_file is not None:
        paths.append(config_file)
    return paths


def load_config(
    project_path: Optional[Path] = None,
    config_file: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
    skip_env: bool = False,
) -> GhsyncConfig:
    """Load and merge ghsync configuration.

    Discovery order (later sources override earlier):
    1. Built-in defaults
    2. User config (~/.ghsync/config.toml)
    3. Project config (.ghsync/config.toml, searched upward)
    4. Explicit config file (``--config``)
    5. Environment variables (unless skip_env=True)

    Raises:
        ConfigError: If config files are invalid
    """
    config_dict: Dict[str, Any] = {}

    user_config_path = _get_user_config_dir() / CONFIG_FILENAME
    if user_config_path.exists():
        try:
            config_dict = _deep_merge(config_dict, _load_toml(user_config_path))
        except ConfigError as e:
            # User config is optional, warn but continue
            warnings.warn(
                f"Skipping invalid user config at {user_config_path}: {e}",
                UserWarning,
            )

    project_config_dir = _get_project_config_dir(project_path)
    if project_config_dir:
        project_config_path = project_config_dir / CONFIG_FILENAME
        if project_config_path.exists():
            try:
                config_dict = _deep_merge(config_dict, _load_toml(project_config_path))
            except ConfigError as e:
                raise ConfigError(f"Invalid project config: {e}")

    if config_file is not None:
        config_dict = _deep_merge(config_dict, _load_toml(config_file))

    if not skip_env:
        config_dict = _apply_env_overlay(config_dict, env)

    try:
        return GhsyncConfig.model_validate(config_dict)
    except ValidationError as e:
        raise ConfigError(f"Config validation failed:\n{e}")


def ensure_config_dir(user: bool = True, project_path: Optional[Path] = None) -> Path:
    """Ensure the user (~/.ghsync/) or project (.ghsync/) config directory exists."""
    if user:
        config_dir = _get_user_config_dir()
    else:
        if project_path is None:
            project_path = Path.cwd()
        config_dir = project_path / PROJECT_CONFIG_DIR

    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def render_config_template(config: Optional[GhsyncConfig] = None) -> str:
    """Render a config as commented TOML, one table per section."""
    config = config or GhsyncConfig.default()
    doc = tomlkit.document()
    doc.add(tomlkit.comment(" ghsync configuration"))
    doc.add(tomlkit.comment(" Environment variables (GHSYNC_*) and CLI flags override these values."))
    doc.add(tomlkit.nl())
    doc.add("version", config.version)

    for section, model in config:
        if section == "version":
            continue
        table = tomlkit.table()
        for key, field_info in type(model).model_fields.items():
            if field_info.description:
                table.add(tomlkit.comment(f" {field_info.description}"))
            value = getattr(model, key)
            if isinstance(value, dict):
                inline = tomlkit.inline_table()
                inline.update(value)
                table.add(key, inline)
            else:
                table.add(key, value)
        doc.add(section, table)

    return tomlkit.dumps(doc)


def write_config_template(path: Path, force: bool = False) -> Path:
    """Write the default config template to ``path``.

    Raises:
        ConfigError: if ``path`` exists and force is not set
    """
    if path.exists() and not force:
        raise ConfigError(f"Config already exists: {path} (use --force to overwrite)")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_config_template(), encoding="utf-8")
    return path
