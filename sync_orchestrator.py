#!/usr/bin/env python3
"""Orchestrators for the setup flow and for one mirror run per push event."""

from __future__ import annotations

from typing import Optional

from config import (
    MirrorEnvironment,
    RunConfig,
    SetupConfig,
)
from errors import ConfigurationError
from git_remote import GitRemote, LocalRepository
from github_source import GitHubSource
from gitlab_target import GitLabTarget
from logging_utils import Logger
from mirror_policy import MirrorDecision, should_mirror
from reconciler import discover_remote_default
from run_registry import (
    CI_CONCURRENCY_GROUP,
    FileRunRegistry,
    RefRunRegistry,
    RunHandle,
)
from sync_executor import SyncExecutor, SyncReport, build_plan

# Exit codes
EXIT_SUCCESS = 0
EXIT_EXECUTION_ERROR = 1
EXIT_INVALID_CONFIG = 2
EXIT_SUPERSEDED = 3
EXIT_SYNC_ERROR = 50

GITLAB_TOKEN_SECRET = "GITLAB_TOKEN"
PRUNE_VARIABLE = "PRUNE_REMOTE"
FALLBACK_DEFAULT_BRANCH = "main"

# Fallback when the workdir is not a git checkout; covers runs in this process only
_registry = RefRunRegistry()


class MirrorOrchestrator:
    """Gate one push event through the policy, then force-sync the target."""

    def __init__(
        self,
        cfg: RunConfig,
        *,
        local: Optional[LocalRepository] = None,
        remote: Optional[GitRemote] = None,
        registry: Optional[RefRunRegistry] = None,
    ) -> None:
        self.cfg = cfg
        self.local = local or LocalRepository(
            cfg.workdir,
            source_remote=cfg.behavior.source_remote,
            timeout=cfg.behavior.git_timeout_s,
        )
        self.remote = remote or GitRemote(
            cfg.gitlab.repo.https_url,
            cfg.gitlab.token,
            cwd=cfg.workdir,
            timeout=cfg.behavior.git_timeout_s,
        )
        self.registry = (
            registry or FileRunRegistry.for_checkout(cfg.workdir) or _registry
        )

    def run(self) -> int:
        try:
            event = self.cfg.event
            policy = self.cfg.behavior.policy
            Logger.info(
                f"{event.event_kind.value} event on {event.ref or '(no ref)'} "
                f"(default branch: {event.default_branch}, policy: {policy.describe()})"
            )
            decision = should_mirror(policy, event)
            if not decision.fire:
                Logger.info(f"not mirroring: {decision.reason}")
                return EXIT_SUCCESS

            Logger.info(f"mirroring to {self.cfg.gitlab.repo}: {decision.reason}")
            with self.registry.run(event.ref or event.default_branch) as handle:
                return self._sync(decision, handle)
        except SystemExit as e:
            return int(e.code) if isinstance(e.code, int) else EXIT_EXECUTION_ERROR
        except ConfigurationError as e:
            Logger.error(f"configuration error: {e}")
            return EXIT_INVALID_CONFIG
        except Exception as e:
            Logger.error(f"unexpected error: {e}")
            return EXIT_EXECUTION_ERROR

    def _sync(self, decision: MirrorDecision, handle: RunHandle) -> int:
        event = self.cfg.event
        behavior = self.cfg.behavior

        fetch = self.local.fetch_source()
        if not fetch.success:
            Logger.error(f"sync step 'fetch' failed: {fetch.detail}")
            return EXIT_SYNC_ERROR

        remote_default = discover_remote_default(self.remote, event.default_branch)
        plan = build_plan(event, decision, remote_default, prune=behavior.prune)
        executor = SyncExecutor(
            dry_run=behavior.dry_run, is_cancelled=lambda: handle.cancelled
        )
        report = executor.execute(plan, self.local, self.remote)
        return self._finish(report)

    @staticmethod
    def _finish(report: SyncReport) -> int:
        for warning in report.warnings:
            Logger.warn(f"warning: {warning}")
        if report.superseded:
            Logger.warn(report.summary())
            return EXIT_SUPERSEDED
        if not report.success:
            Logger.error(f"mirror run failed: {report.summary()}")
            return EXIT_SYNC_ERROR
        if report.pruned:
            Logger.info(f"pruned remote branches: {', '.join(report.pruned)}")
        Logger.info(f"mirror run completed: {report.summary()}")
        return EXIT_SUCCESS


class SetupOrchestrator:
    """One-off setup: make sure the target exists and wire up CI configuration."""

    def __init__(
        self,
        cfg: SetupConfig,
        *,
        gitlab_target: Optional[GitLabTarget] = None,
        github_source: Optional[GitHubSource] = None,
        local: Optional[LocalRepository] = None,
    ) -> None:
        self.cfg = cfg
        self.gl = gitlab_target or GitLabTarget(cfg.gitlab.url, cfg.gitlab.token)
        self.gh = github_source or GitHubSource(cfg.github)
        self.local = local or LocalRepository(cfg.workdir)

    def run(self) -> int:
        try:
            if self.cfg.configure_github:
                self.gh.connect()
            default_branch = self._resolve_default_branch()
            Logger.info(f"source default branch: {default_branch}")

            self._ensure_project(default_branch)
            if self.cfg.configure_github:
                self._configure_github()
            else:
                Logger.info(
                    "skipping GitHub configuration; set the CI variables yourself:"
                )
                for name, value in self._variables().items():
                    Logger.info(f"  {name}={value}")

            Logger.info(
                "the mirror job must cancel older runs for the same ref: "
                f"concurrency group '{CI_CONCURRENCY_GROUP}', cancel-in-progress: true"
            )
            Logger.info(f"mirror policy for non-default branches: {self.cfg.policy.describe()}")
            Logger.info("setup completed")
            return EXIT_SUCCESS
        except SystemExit as e:
            return int(e.code) if isinstance(e.code, int) else EXIT_EXECUTION_ERROR
        except ConfigurationError as e:
            Logger.error(f"configuration error: {e}")
            return EXIT_INVALID_CONFIG
        except Exception as e:
            Logger.error(f"unexpected error: {e}")
            return EXIT_EXECUTION_ERROR

    def _resolve_default_branch(self) -> str:
        if self.cfg.default_branch:
            return self.cfg.default_branch
        if self.cfg.configure_github:
            return self.gh.default_branch()
        return self.local.default_branch() or FALLBACK_DEFAULT_BRANCH

    def _ensure_project(self, default_branch: str) -> None:
        ref = self.cfg.gitlab.repo
        Logger.info(f"checking GitLab repository: {ref}")
        if self.gl.project_exists(ref):
            Logger.info("GitLab project exists")
            return

        Logger.warn("GitLab project does not exist yet")
        if not self.cfg.create_missing:
            Logger.warn(
                f"create it manually at https://{ref.host}/projects/new "
                "or re-run setup with --create"
            )
            return
        if self.cfg.dry_run:
            Logger.info(
                f"would create {ref.web_url} "
                f"(visibility: {self.cfg.visibility.value}, default branch: {default_branch})"
            )
            return
        self.gl.connect()
        self.gl.create_project(ref, self.cfg.visibility, default_branch)

    def _variables(self) -> dict:
        variables = MirrorEnvironment(self.cfg.policy, self.cfg.gitlab.repo).to_env()
        variables[PRUNE_VARIABLE] = "true" if self.cfg.prune else ""
        return variables

    def _configure_github(self) -> None:
        repository = self.cfg.github.repository
        if self.cfg.gitlab.token:
            if self.cfg.dry_run:
                Logger.info(f"would set actions secret {GITLAB_TOKEN_SECRET} on {repository}")
            else:
                self.gh.store_secret(GITLAB_TOKEN_SECRET, self.cfg.gitlab.token)
        else:
            Logger.warn(
                f"no GitLab token given; skipping the {GITLAB_TOKEN_SECRET} secret"
            )

        for name, value in self._variables().items():
            if self.cfg.dry_run:
                Logger.info(f"would set actions variable {name}={value!r} on {repository}")
            else:
                self.gh.store_variable(name, value)
