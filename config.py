#!/usr/bin/env python3
"""Configuration dataclasses for gh-mirror."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from errors import ConfigurationError
from repo_ref import DEFAULT_GITLAB_HOST, RepositoryRef, parse_repository_ref
from security import SecurityValidator

DEFAULT_KEYWORD = "SYNC_TO_GITLAB"

ENV_POLICY = "FEATURE_PUSH_POLICY"
ENV_KEYWORD = "OVERRIDE_KEYWORD"
ENV_GITLAB_REPO = "GITLAB_REPO"

BRANCH_REF_PREFIX = "refs/heads/"


class PolicyMode(Enum):
    """How pushes to non-default branches are mirrored."""
    ALWAYS = "always"
    KEYWORD = "keyword"


class EventKind(Enum):
    """Kinds of events that can trigger a mirror run."""
    MANUAL_DISPATCH = "workflow_dispatch"
    PUSH = "push"


class Visibility(Enum):
    """Enumeration for GitLab project visibility levels."""
    PRIVATE = "private"
    INTERNAL = "internal"
    PUBLIC = "public"


@dataclass(frozen=True)
class MirrorPolicy:
    """Feature-branch mirroring policy.

    `keyword` is only meaningful for `PolicyMode.KEYWORD`, where it must be a
    non-empty string. Surrounding whitespace is stripped on construction, so
    `" SYNC "` matches any message containing `SYNC`, with or without spaces
    around it. It is always None for `PolicyMode.ALWAYS`.
    """
    mode: PolicyMode
    keyword: Optional[str] = None

    def __post_init__(self) -> None:
        if self.mode is PolicyMode.KEYWORD:
            try:
                validated = SecurityValidator.validate_keyword(self.keyword or "")
            except ValueError as e:
                raise ConfigurationError(str(e)) from e
            object.__setattr__(self, "keyword", validated)
        else:
            object.__setattr__(self, "keyword", None)

    @classmethod
    def always(cls) -> MirrorPolicy:
        return cls(PolicyMode.ALWAYS)

    @classmethod
    def with_keyword(cls, keyword: str) -> MirrorPolicy:
        return cls(PolicyMode.KEYWORD, keyword)

    @classmethod
    def from_strings(cls, mode: Optional[str], keyword: Optional[str]) -> MirrorPolicy:
        """Build a policy from its environment/CLI string form."""
        raw_mode = (mode or PolicyMode.ALWAYS.value).strip().lower()
        try:
            parsed = PolicyMode(raw_mode)
        except ValueError as e:
            raise ConfigurationError(
                f"unknown feature push policy '{mode}' (expected always or keyword)"
            ) from e
        if parsed is PolicyMode.ALWAYS:
            return cls.always()
        return cls.with_keyword(DEFAULT_KEYWORD if keyword is None else keyword)

    def describe(self) -> str:
        if self.mode is PolicyMode.KEYWORD:
            return f"keyword ({self.keyword!r} required in commit messages)"
        return "always"


@dataclass(frozen=True)
class PushEvent:
    """A single triggering event as seen by the CI job."""
    ref: str
    event_kind: EventKind
    default_branch: str
    commit_messages: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "commit_messages", tuple(self.commit_messages))

    @property
    def branch(self) -> Optional[str]:
        """Branch name the ref points at, or None for tags and other refs."""
        if not self.ref:
            return None
        if self.ref.startswith(BRANCH_REF_PREFIX):
            return self.ref[len(BRANCH_REF_PREFIX):]
        if self.ref.startswith("refs/"):
            return None
        return self.ref

    @property
    def is_default_branch(self) -> bool:
        return self.branch == self.default_branch


@dataclass(frozen=True)
class MirrorEnvironment:
    """Environment-variable contract shared with the CI workflow."""
    policy: MirrorPolicy
    gitlab_repo: Optional[RepositoryRef] = None

    def to_env(self) -> Dict[str, str]:
        return {
            ENV_POLICY: self.policy.mode.value,
            ENV_KEYWORD: self.policy.keyword or "",
            ENV_GITLAB_REPO: str(self.gitlab_repo) if self.gitlab_repo else "",
        }

    @classmethod
    def from_env(
        cls, env: Mapping[str, str], default_host: str = DEFAULT_GITLAB_HOST
    ) -> MirrorEnvironment:
        policy = MirrorPolicy.from_strings(env.get(ENV_POLICY), env.get(ENV_KEYWORD))
        raw_repo = (env.get(ENV_GITLAB_REPO) or "").strip()
        repo = parse_repository_ref(raw_repo, default_host) if raw_repo else None
        return cls(policy=policy, gitlab_repo=repo)


@dataclass
class GitLabConfig:
    """GitLab target configuration."""
    repo: RepositoryRef
    token: Optional[str]

    @property
    def url(self) -> str:
        return f"https://{self.repo.host}"


@dataclass
class GitHubConfig:
    """GitHub source configuration."""
    token: Optional[str]
    repository: Optional[str]
    api_url: str = "https://api.github.com"


@dataclass
class MirrorBehaviorConfig:
    """Per-push mirror behaviour."""
    policy: MirrorPolicy
    prune: bool = False
    dry_run: bool = False
    source_remote: str = "origin"
    git_timeout_s: int = 600


@dataclass
class RunConfig:
    """Everything one mirror run needs, resolved up front."""
    gitlab: GitLabConfig
    behavior: MirrorBehaviorConfig
    event: PushEvent
    workdir: str = "."


@dataclass
class SetupConfig:
    """Configuration for the one-off setup flow."""
    gitlab: GitLabConfig
    github: GitHubConfig
    policy: MirrorPolicy
    create_missing: bool = False
    configure_github: bool = True
    visibility: Visibility = Visibility.PRIVATE
    default_branch: Optional[str] = None
    dry_run: bool = False
    workdir: str = "."
    prune: bool = False
