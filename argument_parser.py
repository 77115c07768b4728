#!/usr/bin/env python3
"""Command line argument parsing and configuration building."""

from __future__ import annotations

import argparse
import json
import os
import sys
from typing import List, Mapping, Optional, Sequence, Tuple, Union

from config import (
    ENV_GITLAB_REPO,
    ENV_KEYWORD,
    ENV_POLICY,
    EventKind,
    GitHubConfig,
    GitLabConfig,
    MirrorBehaviorConfig,
    MirrorEnvironment,
    PolicyMode,
    PushEvent,
    RunConfig,
    SetupConfig,
    Visibility,
)
from errors import ConfigurationError, NormalizationError
from logging_utils import Logger
from repo_ref import DEFAULT_GITLAB_HOST
from security import SecurityValidator

# Exit codes
EXIT_MISSING_ARGUMENTS = 2

COMMAND_RUN = "run"
COMMAND_SETUP = "setup"


def _create_argument_parser() -> argparse.ArgumentParser:
    """Create and configure the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gh-mirror",
        description="Mirror a GitHub repository to GitLab by force-pushing on every push",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s setup --gitlab-repo gitlab.com/team/project --github-repo octo-org/project --create
  %(prog)s setup --gitlab-repo git@gitlab.example.com:team/sub/project.git --policy keyword \\
           --keyword SYNC_TO_GITLAB
  %(prog)s run        # inside the CI job, reads GITHUB_* and GITLAB_* variables
  %(prog)s run --ref refs/heads/feature-x --default-branch main --dry-run
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show debug output (or set GH_MIRROR_VERBOSE=true)",
    )
    return parser


def _add_gitlab_arguments(parser: argparse.ArgumentParser) -> None:
    """Add GitLab target arguments to parser."""
    parser.add_argument(
        "--gitlab-repo",
        dest="gitlab_repo",
        help="Target repository: host/ns/repo, https URL or SSH URL (or GITLAB_REPO)",
    )
    parser.add_argument(
        "--gitlab-token",
        dest="gitlab_token",
        help="GitLab personal access token (or set GITLAB_TOKEN env var)",
    )
    parser.add_argument(
        "--gitlab-host",
        dest="gitlab_host",
        help=f"Host used when the repository has none (default: {DEFAULT_GITLAB_HOST})",
    )


def _add_policy_arguments(parser: argparse.ArgumentParser) -> None:
    """Add feature-branch policy arguments to parser."""
    parser.add_argument(
        "--policy",
        dest="policy",
        choices=[mode.value for mode in PolicyMode],
        help="Mirror every feature-branch push, or only when the keyword is present",
    )
    parser.add_argument(
        "--keyword",
        dest="keyword",
        help="Commit-message keyword required by the keyword policy",
    )
    parser.add_argument(
        "--prune",
        action="store_true",
        dest="prune",
        help="Delete remote branches other than the default (or PRUNE_REMOTE=true)",
    )
    parser.add_argument(
        "-d",
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="Log actions without doing them",
    )
    parser.add_argument(
        "--workdir",
        dest="workdir",
        default=".",
        help="Path of the source git checkout (default: current directory)",
    )


def _add_run_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments describing the triggering event."""
    parser.add_argument(
        "--event-name",
        dest="event_name",
        choices=[kind.value for kind in EventKind],
        help="Triggering event (default: GITHUB_EVENT_NAME, else push)",
    )
    parser.add_argument(
        "--ref",
        dest="ref",
        help="Pushed ref, e.g. refs/heads/feature-x (default: GITHUB_REF)",
    )
    parser.add_argument(
        "--default-branch",
        dest="default_branch",
        help="Source default branch (default: DEFAULT_BRANCH or the event payload)",
    )
    parser.add_argument(
        "--event-path",
        dest="event_path",
        help="Path of the event payload JSON (default: GITHUB_EVENT_PATH)",
    )
    parser.add_argument(
        "-m",
        "--commit-message",
        dest="commit_messages",
        action="append",
        help="Commit message of the push; repeat for each commit (overrides payload)",
    )
    parser.add_argument(
        "--source-remote",
        dest="source_remote",
        default="origin",
        help="Name of the source remote in the checkout (default: origin)",
    )
    parser.add_argument(
        "--timeout",
        dest="timeout_s",
        type=int,
        default=600,
        help="Timeout in seconds for each git network operation (default: 600)",
    )


def _add_setup_arguments(parser: argparse.ArgumentParser) -> None:
    """Add arguments used by the setup flow."""
    parser.add_argument(
        "--github-repo",
        dest="github_repo",
        help="Source repository as owner/name (or GITHUB_REPOSITORY)",
    )
    parser.add_argument(
        "--github-token",
        dest="github_token",
        help="GitHub API token (or set GITHUB_TOKEN / GH_TOKEN env var)",
    )
    parser.add_argument(
        "--github-api",
        dest="github_api_url",
        default="https://api.github.com",
        help="Base URL of the GitHub API",
    )
    parser.add_argument(
        "--no-github",
        action="store_false",
        dest="configure_github",
        help="Do not touch GitHub secrets/variables; print them instead",
    )
    parser.add_argument(
        "--create",
        action="store_true",
        dest="create_missing",
        help="Create the GitLab project when it does not exist",
    )
    parser.add_argument(
        "--visibility",
        dest="visibility",
        choices=[visibility.value for visibility in Visibility],
        default=Visibility.PRIVATE.value,
        help="Visibility of a created GitLab project (default: private)",
    )
    parser.add_argument(
        "--default-branch",
        dest="default_branch",
        help="Default branch for a created project (default: the source default)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = _create_argument_parser()
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser(
        COMMAND_RUN, help="Mirror the current push event (CI job entry point)"
    )
    _add_gitlab_arguments(run_parser)
    _add_policy_arguments(run_parser)
    _add_run_arguments(run_parser)

    setup_parser = subparsers.add_parser(
        COMMAND_SETUP, help="Check/create the GitLab project and configure CI settings"
    )
    _add_gitlab_arguments(setup_parser)
    _add_policy_arguments(setup_parser)
    _add_setup_arguments(setup_parser)
    return parser


def _env_flag(env: Mapping[str, str], name: str) -> bool:
    return (env.get(name) or "").strip().lower() == "true"


def load_event_payload(path: Optional[str]) -> dict:
    """Read the CI event payload; a missing or broken file reads as empty."""
    if not path:
        return {}
    try:
        with open(path, encoding="utf-8") as handle:
            payload = json.load(handle)
    except (OSError, ValueError) as e:
        Logger.warn(f"could not read event payload {path}: {e}")
        return {}
    return payload if isinstance(payload, dict) else {}


def commit_messages_from_payload(payload: dict) -> List[str]:
    """Messages of every commit in the push, in payload order."""
    commits = payload.get("commits") or []
    return [
        str(commit.get("message") or "")
        for commit in commits
        if isinstance(commit, dict)
    ]


def _resolve_environment(args, env: Mapping[str, str], policy_var: str) -> MirrorEnvironment:
    """Read the mirror variables the way the CI job sees them, flags first."""
    overrides = {
        ENV_POLICY: args.policy or env.get(policy_var),
        ENV_KEYWORD: args.keyword if args.keyword is not None else env.get(ENV_KEYWORD),
        ENV_GITLAB_REPO: args.gitlab_repo or env.get(ENV_GITLAB_REPO),
    }
    host = args.gitlab_host or env.get("GITLAB_HOST") or DEFAULT_GITLAB_HOST
    mirror_env = MirrorEnvironment.from_env(
        {name: value for name, value in overrides.items() if value is not None}, host
    )
    if mirror_env.gitlab_repo is None:
        raise ConfigurationError(
            "gitlab repository not provided (use --gitlab-repo or GITLAB_REPO, "
            "e.g. gitlab.com/<namespace>/<repo>.git)"
        )
    return mirror_env


def _gitlab_config(mirror_env: MirrorEnvironment, args, env: Mapping[str, str]) -> GitLabConfig:
    token = args.gitlab_token or env.get("GITLAB_TOKEN") or None
    return GitLabConfig(repo=mirror_env.gitlab_repo, token=token)


def _build_run_config(args, env: Mapping[str, str]) -> RunConfig:
    mirror_env = _resolve_environment(args, env, ENV_POLICY)
    gitlab_config = _gitlab_config(mirror_env, args, env)
    policy = mirror_env.policy

    payload = load_event_payload(args.event_path or env.get("GITHUB_EVENT_PATH"))
    event_name = args.event_name or env.get("GITHUB_EVENT_NAME") or EventKind.PUSH.value
    try:
        event_kind = EventKind(event_name)
    except ValueError as e:
        raise ConfigurationError(f"unsupported event '{event_name}'") from e

    repository = payload.get("repository") or {}
    default_branch = (
        args.default_branch
        or env.get("DEFAULT_BRANCH")
        or (repository.get("default_branch") if isinstance(repository, dict) else None)
    )
    if not default_branch:
        raise ConfigurationError(
            "source default branch unknown (use --default-branch or DEFAULT_BRANCH)"
        )

    if args.commit_messages is not None:
        messages = list(args.commit_messages)
    else:
        messages = commit_messages_from_payload(payload)

    event = PushEvent(
        ref=args.ref or env.get("GITHUB_REF") or "",
        event_kind=event_kind,
        default_branch=default_branch,
        commit_messages=tuple(messages),
    )
    behavior = MirrorBehaviorConfig(
        policy=policy,
        prune=args.prune or _env_flag(env, "PRUNE_REMOTE"),
        dry_run=args.dry_run,
        source_remote=args.source_remote,
        git_timeout_s=args.timeout_s,
    )
    return RunConfig(gitlab=gitlab_config, behavior=behavior, event=event, workdir=args.workdir)


def _build_setup_config(args, env: Mapping[str, str]) -> SetupConfig:
    mirror_env = _resolve_environment(args, env, "FEATURE_POLICY")
    gitlab_config = _gitlab_config(mirror_env, args, env)
    policy = mirror_env.policy

    github_repo = args.github_repo or env.get("GITHUB_REPOSITORY")
    if args.configure_github:
        try:
            github_repo = SecurityValidator.validate_github_repository(github_repo or "")
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
    github_token = args.github_token or env.get("GITHUB_TOKEN") or env.get("GH_TOKEN")

    default_branch = args.default_branch
    if default_branch:
        try:
            SecurityValidator.validate_branch_name(default_branch)
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

    return SetupConfig(
        gitlab=gitlab_config,
        github=GitHubConfig(
            token=github_token,
            repository=github_repo,
            api_url=args.github_api_url.rstrip("/"),
        ),
        policy=policy,
        create_missing=args.create_missing,
        configure_github=args.configure_github,
        visibility=Visibility(args.visibility),
        default_branch=default_branch,
        dry_run=args.dry_run,
        workdir=args.workdir,
        prune=args.prune or _env_flag(env, "PRUNE_REMOTE"),
    )


def parse_arguments(
    argv: Optional[Sequence[str]] = None, env: Optional[Mapping[str, str]] = None
) -> Tuple[str, Union[RunConfig, SetupConfig]]:
    """Parse command line arguments and return (command, configuration)."""
    env = os.environ if env is None else env
    args = build_parser().parse_args(argv)
    Logger.set_verbose(args.verbose or _env_flag(env, "GH_MIRROR_VERBOSE"))

    try:
        if args.command == COMMAND_RUN:
            return COMMAND_RUN, _build_run_config(args, env)
        return COMMAND_SETUP, _build_setup_config(args, env)
    except (ConfigurationError, NormalizationError) as e:
        Logger.security_event("CONFIG_VALIDATION_FAILED", f"configuration validation failed: {e}")
        Logger.error(f"configuration error: {e}")
        sys.exit(EXIT_MISSING_ARGUMENTS)
