#!/usr/bin/env python3
"""Force-synchronize branches and tags from the source checkout to the target."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, FrozenSet, List, Optional, Tuple

from config import BRANCH_REF_PREFIX, PushEvent
from errors import ConfigurationError, PruneDeleteError, SyncTransportError
from git_remote import (
    GitResult,
    LocalRepoHandle,
    RemoteHandle,
    parse_ls_remote_heads,
)
from logging_utils import Logger
from mirror_policy import MirrorDecision
from security import SecurityValidator

STEP_DEFAULT_BRANCH = "default-branch"
STEP_CURRENT_BRANCH = "current-branch"
STEP_TAGS = "tags"
STEP_PRUNE = "prune"


@dataclass(frozen=True)
class RefSync:
    """Push the source tracking ref of one branch onto one remote branch."""
    source_branch: str
    remote_branch: str
    step: str
    force: bool = True

    @property
    def remote_ref(self) -> str:
        return f"{BRANCH_REF_PREFIX}{self.remote_branch}"


@dataclass(frozen=True)
class SyncPlan:
    """Ordered branch pushes, then tags, then optional pruning."""
    targets: Tuple[RefSync, ...]
    push_tags: bool = True
    prune: bool = False
    keep_branches: FrozenSet[str] = frozenset()


@dataclass
class StepResult:
    step: str
    success: bool
    detail: str = ""


@dataclass
class SyncReport:
    """What one execution did, and whether it counts as a success."""
    steps: List[StepResult] = field(default_factory=list)
    pruned: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    error: Optional[SyncTransportError] = None
    superseded: bool = False

    @property
    def success(self) -> bool:
        return self.error is None and not self.superseded

    @property
    def failed_step(self) -> Optional[str]:
        return self.error.step if self.error else None

    def summary(self) -> str:
        if self.superseded:
            return "superseded by a newer run for the same ref"
        if self.error:
            return f"failed at step '{self.error.step}': {self.error.detail}"
        done = ", ".join(s.step for s in self.steps) or "nothing"
        text = f"synced {done}"
        if self.warnings:
            text += f" with {len(self.warnings)} warning(s)"
        return text


def _validated_branch(branch: str) -> str:
    try:
        return SecurityValidator.validate_branch_name(branch)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e


def build_plan(
    event: PushEvent,
    decision: MirrorDecision,
    remote_default: str,
    *,
    prune: bool = False,
) -> SyncPlan:
    """Build the sync plan for an event the policy engine let through."""
    if not decision.fire:
        raise ValueError("cannot plan a sync for an event the policy declined")

    source_default = _validated_branch(event.default_branch)
    remote_default = _validated_branch(remote_default)
    targets = [RefSync(source_default, remote_default, STEP_DEFAULT_BRANCH)]
    keep = {remote_default}

    current = event.branch
    if decision.push_current and current and current != source_default:
        current = _validated_branch(current)
        if current == remote_default:
            Logger.warn(
                f"branch '{current}' is the remote default branch and is already "
                f"overwritten from '{source_default}'; skipping it"
            )
        else:
            targets.append(RefSync(current, current, STEP_CURRENT_BRANCH))
            keep.add(current)

    return SyncPlan(
        targets=tuple(targets),
        push_tags=True,
        prune=prune,
        keep_branches=frozenset(keep),
    )


class SyncExecutor:
    """Runs a SyncPlan against a remote, one step at a time.

    Branch and tag pushes are fatal on failure: the remaining steps are not
    attempted. Prune deletions are best effort and only produce warnings.
    """

    def __init__(
        self,
        *,
        dry_run: bool = False,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> None:
        self.dry_run = dry_run
        self.is_cancelled = is_cancelled or (lambda: False)

    def execute(
        self, plan: SyncPlan, local: LocalRepoHandle, remote: RemoteHandle
    ) -> SyncReport:
        report = SyncReport()

        for target in plan.targets:
            if self._stop_if_cancelled(report):
                return report
            local_ref = local.tracking_ref(target.source_branch)
            Logger.info(f"force push {local_ref} -> {target.remote_ref} ({target.step})")
            result = self._mutate(
                remote.push_ref, local_ref, target.remote_ref, target.force
            )
            if not self._record(report, target.step, result):
                return report
            if not self.dry_run:
                Logger.security_event(
                    "FORCE_PUSH", f"{local_ref} -> {target.remote_ref} on {remote.name}"
                )

        if plan.push_tags:
            if self._stop_if_cancelled(report):
                return report
            Logger.info("force push tags")
            if not self._record(report, STEP_TAGS, self._mutate(remote.push_tags, True)):
                return report
            if not self.dry_run:
                Logger.security_event("FORCE_PUSH", f"tags -> {remote.name}")

        if plan.prune:
            self._prune(plan, remote, report)

        return report

    def _mutate(self, operation, *args) -> GitResult:
        if self.dry_run:
            return GitResult(True, "dry-run", stdout="skipped (dry run)")
        return operation(*args)

    def _stop_if_cancelled(self, report: SyncReport) -> bool:
        if self.is_cancelled():
            Logger.warn("run superseded by a newer push for the same ref, stopping")
            report.superseded = True
            return True
        return False

    @staticmethod
    def _record(report: SyncReport, step: str, result: GitResult) -> bool:
        report.steps.append(StepResult(step, result.success, result.detail))
        if result.success:
            return True
        report.error = SyncTransportError(step, result.detail)
        Logger.error(f"sync step '{step}' failed: {result.detail}")
        return False

    def _prune(self, plan: SyncPlan, remote: RemoteHandle, report: SyncReport) -> None:
        listing = remote.list_heads()
        if not listing.success:
            warning = f"could not list remote branches for pruning: {listing.detail}"
            Logger.warn(warning)
            report.warnings.append(warning)
            report.steps.append(StepResult(STEP_PRUNE, False, listing.detail))
            return

        stale = [
            branch
            for branch in parse_ls_remote_heads(listing.stdout)
            if branch not in plan.keep_branches
        ]
        for branch in stale:
            if self._stop_if_cancelled(report):
                return
            if self.dry_run:
                Logger.info(f"would delete stale remote branch: {branch}")
                continue
            Logger.info(f"deleting stale remote branch: {branch}")
            result = remote.delete_branch(branch)
            if result.success:
                report.pruned.append(branch)
                Logger.security_event("BRANCH_DELETED", f"deleted remote branch {branch}")
                continue
            error = PruneDeleteError(branch, result.detail)
            Logger.warn(str(error))
            report.warnings.append(str(error))

        report.steps.append(
            StepResult(STEP_PRUNE, True, f"deleted {len(report.pruned)} of {len(stale)}")
        )
