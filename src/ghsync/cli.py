#!/usr/bin/env python3
"""ghsync CLI - reconcile GitHub branches, content, tags and refs through the API."""
from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

# Fail fast on unsupported interpreter version
if sys.version_info < (3, 10):
    print(f"ghsync requires Python 3.10+; found {sys.version.split()[0]}", file=sys.stderr)
    sys.exit(1)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2

AUTO_MERGE_CHOICES = ("off", "merge", "squash", "rebase")
REF_TYPE_CHOICES = ("heads", "tags")


def _common_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Extra config file, applied over user and project config")
    common.add_argument("--owner", help="Repository owner (default: from config, CI or local remote)")
    common.add_argument("--repo", help="Repository name (default: from config, CI or local remote)")
    common.add_argument("--token", help="GitHub token, or path to a file containing one")
    common.add_argument(
        "--no-cli-token",
        action="store_true",
        default=None,
        help="Do not fall back to `gh auth token`",
    )
    common.add_argument("-o", "--output", choices=("json", "yaml"), help="Report format")
    common.add_argument("--compact", action="store_true", default=None, help="Single-line JSON")
    common.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeatable)")
    common.add_argument("--log-dir", help="Also write logs to a rotating file in this directory")
    return common


def _add_dry_run(p: argparse.ArgumentParser) -> None:
    p.add_argument("-n", "--dry-run", action="store_true", help="Resolve and diff, but do not write")


def _add_force(p: argparse.ArgumentParser, help_text: str) -> None:
    p.add_argument("-f", "--force", action="store_true", help=help_text)


def build_parser() -> argparse.ArgumentParser:
    common = _common_parser()
    ap = argparse.ArgumentParser(
        prog="ghsync",
        description="Idempotent GitHub branch, content, tag and ref updates through the API",
    )
    from . import __version__

    ap.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    sub = ap.add_subparsers(dest="cmd")

    p_content = sub.add_parser(
        "content",
        aliases=["commit"],
        parents=[common],
        help="Commit file changes to a branch, optionally opening a pull request",
    )
    p_content.add_argument("files", nargs="*", help="Update specs: local-path[:remote-path]")
    p_content.add_argument("-u", "--update", action="append", default=[], help="Update spec (repeatable)")
    p_content.add_argument(
        "-c", "--copy", action="append", default=[], help="Copy spec [branch:]source:target (repeatable)"
    )
    p_content.add_argument("-d", "--delete", action="append", default=[], help="Remote path to delete (repeatable)")
    p_content.add_argument("--separator", help="File spec separator (default: ':')")
    local_mode = p_content.add_mutually_exclusive_group()
    local_mode.add_argument("--tracked", action="store_true", help="Commit all changed tracked files")
    local_mode.add_argument("--staged", action="store_true", help="Commit staged changes")
    p_content.add_argument("-b", "--branch", help="Target branch (default: current branch)")
    p_content.add_argument("-B", "--base-branch", help="Base branch (default: repository default branch)")
    p_content.add_argument(
        "--create-branch",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Create the target branch if missing (default: on)",
    )
    p_content.add_argument("-m", "--message", help="Commit message")
    p_content.add_argument("--user-trailer", help="Author trailer key (empty disables)")
    p_content.add_argument("--user-name", help="Author name for the trailer")
    p_content.add_argument("--user-email", help="Author email for the trailer")
    p_content.add_argument("--trailer", action="append", default=[], help="Extra trailer key=value (repeatable)")
    p_content.add_argument("--allow-empty", action="store_true", help="Commit even when nothing changed")
    _add_force(p_content, "Include every file even when its content is unchanged")
    p_content.add_argument("--pr-title", help="Open a pull request with this title")
    p_content.add_argument("--pr-body", default="", help="Pull request body")
    p_content.add_argument("--pr-draft", action="store_true", default=None, help="Open the pull request as a draft")
    p_content.add_argument("--pr-auto-merge", choices=AUTO_MERGE_CHOICES, help="Auto-merge method")
    _add_dry_run(p_content)

    p_tag = sub.add_parser("tag", parents=[common], help="Create or update a tag")
    p_tag.add_argument("name", help="Tag name")
    p_tag.add_argument("-c", "--commitish", default="", help="Target commit-ish (default: current branch)")
    p_tag.add_argument("-m", "--message", help="Annotation message")
    p_tag.add_argument("--lightweight", action="store_true", default=None, help="Create a lightweight tag")
    _add_force(p_tag, "Repoint an existing tag")
    _add_dry_run(p_tag)

    p_update = sub.add_parser("update-ref", parents=[common], help="Point refs at a commit")
    p_update.add_argument("targets", nargs="+", help="Target refs (unqualified names use --target-type)")
    p_update.add_argument("-s", "--source", default="", help="Source commit-ish (default: current branch)")
    p_update.add_argument("--source-type", choices=REF_TYPE_CHOICES, help="Namespace for an unqualified source")
    p_update.add_argument("--target-type", choices=REF_TYPE_CHOICES, help="Namespace for unqualified targets")
    _add_force(p_update, "Allow non-fast-forward updates")
    p_update.add_argument("-i", "--immutable", action="store_true", help="Never move a ref that already exists elsewhere")
    _add_dry_run(p_update)

    p_resolve = sub.add_parser("resolve", parents=[common], help="Resolve a commit-ish to a SHA")
    p_resolve.add_argument("commitish", nargs="?", default="", help="Commit-ish (default: current branch)")
    p_resolve.add_argument("--branches", action="store_true", help="List branches at the commit")
    p_resolve.add_argument("--tags", action="store_true", help="List tags at the commit")

    p_deploy = sub.add_parser("deployment", parents=[common], help="Record a deployment status")
    p_deploy.add_argument("environment", nargs="?", default="", help="Environment name")
    p_deploy.add_argument("-e", "--environment", dest="environment_opt", default="", help="Environment name")
    p_deploy.add_argument("-c", "--commitish", default="", help="Commit-ish (default: default branch)")
    p_deploy.add_argument(
        "-s",
        "--state",
        default="success",
        choices=("success", "pending", "failure", "error", "in_progress", "queued", "inactive"),
    )
    p_deploy.add_argument("-T", "--transient", action="store_true", help="Transient environment")
    p_deploy.add_argument("-P", "--production", action="store_true", help="Production environment")
    p_deploy.add_argument("--description", default="", help="Deployment description")
    p_deploy.add_argument("--environment-url", default="", help="Environment URL")
    _add_dry_run(p_deploy)

    p_debug = sub.add_parser("debug", aliases=["info"], parents=[common], help="Show the resolved context")
    p_debug.add_argument("-m", "--message", help="Commit message to preview")
    p_debug.add_argument("--trailer", action="append", default=[], help="Extra trailer key=value (repeatable)")

    p_config = sub.add_parser("config", help="Configuration management")
    config_sub = p_config.add_subparsers(dest="config_cmd")
    p_config_init = config_sub.add_parser("init", help="Write a config template")
    location = p_config_init.add_mutually_exclusive_group()
    location.add_argument("--user", action="store_true", help="Write ~/.ghsync/config.toml (default)")
    location.add_argument("--project", action="store_true", help="Write ./.ghsync/config.toml")
    p_config_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_config_show = config_sub.add_parser("show", parents=[common], help="Print the resolved configuration")
    p_config_show.add_argument("--sources", action="store_true", help="List config files that were read")

    return ap


def _fail(message: str, code: int = EXIT_USAGE) -> None:
    print(f"error: {message}", file=sys.stderr)
    sys.exit(code)


def _parse_trailers(values):
    from .errors import InputValidationError

    trailers = {}
    for value in values:
        key, sep, text = value.partition("=")
        if not sep or not key.strip():
            raise InputValidationError(f"invalid trailer {value!r}; expected key=value")
        trailers[key.strip()] = text.strip()
    return trailers


def _emit(report, cfg) -> None:
    from .output import encode

    sys.stdout.write(encode(report, cfg.output.format, cfg.output.compact))
    sys.exit(EXIT_FAILED if report.failed else EXIT_OK)


class _Context:
    """Per-invocation state derived from flags, config and the local clone."""

    def __init__(self, args, cfg):
        from .credentials import find_token
        from .local import LocalRepository, LocalRepositoryError, github_actions_context
        from .models import RepositoryRef

        self.args = args
        self.cfg = cfg
        try:
            self.local = LocalRepository()
        except LocalRepositoryError:
            self.local = None

        # flags > config (GHSYNC_*/GITHUB_REPOSITORY overlay) > local remote > Actions env
        ci_repo, ci_branch = github_actions_context()
        owner = args.owner or cfg.repository.owner
        name = args.repo or cfg.repository.name
        detected = (self.local.github_repository(cfg.api.host) if self.local else None) or ci_repo
        if detected:
            owner = owner or detected.owner
            name = name or detected.name
        self.repository = RepositoryRef(owner, name) if owner and name else None

        self.branch = (
            os.environ.get("GIT_BRANCH")
            or ci_branch
            or (self.local.current_branch() if self.local else "")
        )

        self.allow_cli_token = not (
            args.no_cli_token if args.no_cli_token is not None else cfg.api.no_cli_token
        )
        self.token, self.token_source = find_token(args.token, allow_cli=self.allow_cli_token)

    def client(self):
        from .credentials import CredentialsError
        from .remote import GitHubClient

        if self.repository is None:
            _fail("repository owner/name not set; use --owner/--repo or run inside a GitHub clone")
        if not self.token:
            raise CredentialsError(
                "No GitHub token found. Pass --token, set GHSYNC_TOKEN/GH_TOKEN/GITHUB_TOKEN, "
                "or log in with `gh auth login`."
            )
        api = self.cfg.api
        return GitHubClient(
            self.token,
            self.repository,
            api_url=api.url,
            graphql_url=api.graphql_url,
            timeout=api.timeout,
            max_retries=api.max_retries,
            max_backoff=api.max_backoff,
        )


def _content_inputs(args, cfg, ctx):
    """Parse every file spec up front; all problems are reported together."""
    from .content import ChangeSet
    from .errors import FileSpecError, InputValidationError
    from .specs import parse_copy_spec, parse_update_spec

    separator = args.separator or cfg.content.separator
    problems = []

    local_changes = None
    if args.tracked or args.staged:
        if ctx.local is None:
            raise InputValidationError("--tracked/--staged require a local git repository")
        local_changes = ctx.local.staged() if args.staged else ctx.local.tracked()

    copies = []
    for spec in args.copy:
        try:
            copies.append(parse_copy_spec(spec, separator))
        except FileSpecError as exc:
            problems.append(f"copy spec {exc}")

    explicit = ChangeSet()
    for spec in list(args.update) + list(args.files):
        try:
            source, target = parse_update_spec(spec, separator)
        except FileSpecError as exc:
            problems.append(f"update spec {exc}")
            continue
        try:
            explicit.add(target, Path(source).read_bytes())
        except OSError as exc:
            problems.append(f"update spec {spec!r}: cannot read {source}: {exc.strerror}")
    for target in args.delete:
        explicit.delete(target)

    if problems:
        raise InputValidationError("invalid file specs:\n  " + "\n  ".join(problems))
    return local_changes, copies, explicit


def _trailers(args, cfg):
    from .specs import build_trailers

    content = cfg.content
    extra = dict(content.trailers)
    extra.update(_parse_trailers(args.trailer))
    return build_trailers(
        content.user_trailer if getattr(args, "user_trailer", None) is None else args.user_trailer,
        getattr(args, "user_name", None) or content.user_name,
        getattr(args, "user_email", None) or content.user_email,
        extra,
    )


def _commit_message(args, cfg):
    from .specs import build_commit_message

    return build_commit_message(args.message or cfg.content.message, _trailers(args, cfg))


def main(argv: list[str] | None = None) -> None:
    ap = build_parser()
    args = ap.parse_args(argv)

    if not args.cmd:
        ap.print_help()
        sys.exit(EXIT_USAGE)

    if args.cmd == "config" and args.config_cmd == "init":
        from .config_loader import CONFIG_FILENAME, ConfigError, ensure_config_dir, write_config_template

        config_dir = ensure_config_dir(user=not args.project, project_path=Path.cwd())
        try:
            path = write_config_template(config_dir / CONFIG_FILENAME, force=args.force)
        except ConfigError as e:
            _fail(str(e), EXIT_FAILED)
        print(f"Created {'project' if args.project else 'user'} config: {path}")
        sys.exit(EXIT_OK)

    if args.cmd == "config" and not args.config_cmd:
        print("Usage: ghsync config {init|show}")
        sys.exit(EXIT_USAGE)

    from .config_loader import ConfigError, get_config_paths, load_config
    from .credentials import CredentialsError
    from .errors import InputValidationError
    from .observability import configure_logging, level_for_verbosity

    config_file = Path(args.config) if args.config else None
    try:
        cfg = load_config(config_file=config_file)
    except ConfigError as e:
        _fail(str(e))

    if args.output:
        cfg.output.format = args.output
    if args.compact is not None:
        cfg.output.compact = args.compact
    configure_logging(
        level_for_verbosity(args.verbose, cfg.logging.level),
        log_dir=args.log_dir or cfg.logging.dir or None,
        max_bytes=cfg.logging.max_bytes,
        backup_count=cfg.logging.backup_count,
    )

    if args.cmd == "config":
        from .output import encode

        if args.sources:
            for path in get_config_paths(config_file=config_file):
                print(path)
            sys.exit(EXIT_OK)
        sys.stdout.write(encode(cfg.model_dump(), cfg.output.format, cfg.output.compact))
        sys.exit(EXIT_OK)

    try:
        ctx = _Context(args, cfg)

        if args.cmd in ("debug", "info"):
            from .commands import run_debug

            report = run_debug(
                ctx.repository,
                ctx.branch,
                bool(ctx.token),
                args.message or cfg.content.message,
                _trailers(args, cfg),
                local=ctx.local,
            )
            _emit(report, cfg)

        if args.cmd in ("content", "commit"):
            from .commands import run_content
            from .models import AutoMergeMode, ContentRequest, PullRequestState

            branch = args.branch or ctx.branch
            if not branch:
                raise InputValidationError("target branch not set; use --branch")
            local_changes, copies, explicit = _content_inputs(args, cfg, ctx)
            message = _commit_message(args, cfg)
            pull_request = None
            if args.pr_title:
                pull_request = PullRequestState(
                    repo_node_id="",
                    head=branch,
                    base=args.base_branch or "",
                    title=args.pr_title,
                    body=args.pr_body,
                    draft=cfg.pull_request.draft if args.pr_draft is None else args.pr_draft,
                    auto_merge=AutoMergeMode(args.pr_auto_merge or cfg.pull_request.auto_merge),
                )
            request = ContentRequest(
                branch=branch,
                message=message,
                base=args.base_branch,
                create_branch=cfg.content.create_branch if args.create_branch is None else args.create_branch,
                force=args.force,
                dry_run=args.dry_run,
                allow_empty=args.allow_empty,
                pull_request=pull_request,
            )
            with ctx.client() as client:
                report = run_content(client, request, local_changes, copies, explicit)
            _emit(report, cfg)

        if args.cmd == "tag":
            from .commands import run_tag
            from .models import TagRequest

            request = TagRequest(
                name=args.name,
                commitish=args.commitish or ctx.branch,
                message=args.message if args.message is not None else cfg.tag.message,
                lightweight=cfg.tag.lightweight if args.lightweight is None else args.lightweight,
                force=args.force,
                dry_run=args.dry_run,
            )
            if not request.commitish:
                raise InputValidationError("commit-ish not set; use --commitish")
            with ctx.client() as client:
                report = run_tag(client, request)
            _emit(report, cfg)

        if args.cmd == "update-ref":
            from .commands import run_update_ref
            from .models import UpdateRefRequest
            from .refs import qualify_ref_name
            from .updateref import check_policy

            check_policy(args.force, args.immutable)
            request = UpdateRefRequest(
                source=args.source or ctx.branch,
                targets=args.targets,
                source_type=args.source_type or cfg.update_ref.source_type,
                target_type=args.target_type or cfg.update_ref.target_type,
                force=args.force,
                immutable=args.immutable,
                dry_run=args.dry_run,
            )
            if not request.source:
                raise InputValidationError("source not set; use --source")
            for target in request.targets:
                qualify_ref_name(target, request.target_type)
            with ctx.client() as client:
                report = run_update_ref(client, request)
            _emit(report, cfg)

        if args.cmd == "resolve":
            from .commands import run_resolve

            commitish = args.commitish or ctx.branch
            if not commitish:
                raise InputValidationError("commit-ish not set")
            with ctx.client() as client:
                report = run_resolve(client, commitish, branches=args.branches, tags=args.tags)
            _emit(report, cfg)

        if args.cmd == "deployment":
            from .commands import run_deployment

            with ctx.client() as client:
                report = run_deployment(
                    client,
                    args.environment or args.environment_opt,
                    commitish=args.commitish,
                    state=args.state,
                    description=args.description,
                    environment_url=args.environment_url,
                    transient=args.transient,
                    production=args.production,
                    dry_run=args.dry_run,
                )
            _emit(report, cfg)

    except (InputValidationError, CredentialsError) as e:
        _fail(str(e))

    ap.print_help()
    sys.exit(EXIT_USAGE)


if __name__ == "__main__":
    main()
