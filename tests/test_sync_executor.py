"""Tests for sync planning and the force-push sequence."""

from __future__ import annotations

import pytest

from config import EventKind, PushEvent
from errors import ConfigurationError
from fakes import FakeRemote
from git_remote import LocalRepository
from mirror_policy import MirrorDecision
from sync_executor import (
    STEP_CURRENT_BRANCH,
    STEP_DEFAULT_BRANCH,
    STEP_PRUNE,
    STEP_TAGS,
    SyncExecutor,
    build_plan,
)

LOCAL_REFS = {
    "refs/remotes/origin/main": "a" * 40,
    "refs/remotes/origin/feature-x": "b" * 40,
}
TAGS = {"v1.0.0": "c" * 40}
FIRE_ALL = MirrorDecision(True, True, True)
FIRE_DEFAULT = MirrorDecision(True, True, False)


def _event(ref: str = "refs/heads/main") -> PushEvent:
    return PushEvent(ref=ref, event_kind=EventKind.PUSH, default_branch="main")


@pytest.fixture
def local() -> LocalRepository:
    return LocalRepository(".", source_remote="origin")


def test_build_plan_for_default_branch_push() -> None:
    plan = build_plan(_event(), FIRE_DEFAULT, "main")
    assert [(t.source_branch, t.remote_ref, t.step) for t in plan.targets] == [
        ("main", "refs/heads/main", STEP_DEFAULT_BRANCH)
    ]
    assert plan.push_tags is True
    assert plan.keep_branches == frozenset({"main"})


def test_build_plan_maps_default_onto_remote_name() -> None:
    """Source main overwrites a remote that still calls its default master."""
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "master", prune=True)
    assert [(t.source_branch, t.remote_branch) for t in plan.targets] == [
        ("main", "master"),
        ("feature-x", "feature-x"),
    ]
    assert plan.targets[1].step == STEP_CURRENT_BRANCH
    assert plan.prune is True
    assert plan.keep_branches == frozenset({"master", "feature-x"})


def test_build_plan_for_manual_dispatch_on_default() -> None:
    """current == default, so the branch is pushed once."""
    event = PushEvent(ref="refs/heads/main", event_kind=EventKind.MANUAL_DISPATCH, default_branch="main")
    plan = build_plan(event, FIRE_ALL, "main")
    assert len(plan.targets) == 1


def test_build_plan_rejects_declined_decision() -> None:
    with pytest.raises(ValueError):
        build_plan(_event("refs/heads/feature-x"), MirrorDecision(False), "main")


def test_build_plan_rejects_invalid_branch_name() -> None:
    with pytest.raises(ConfigurationError):
        build_plan(_event("refs/heads/bad..name"), FIRE_ALL, "main")


def test_build_plan_skips_branch_named_like_remote_default() -> None:
    """Pushing source 'master' would clobber the remote default we just wrote."""
    plan = build_plan(_event("refs/heads/master"), FIRE_ALL, "master")
    assert [t.source_branch for t in plan.targets] == ["main"]


def test_execute_pushes_default_current_and_tags(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS, local_tags=TAGS)
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main")

    report = SyncExecutor().execute(plan, local, remote)

    assert report.success
    assert [s.step for s in report.steps] == [STEP_DEFAULT_BRANCH, STEP_CURRENT_BRANCH, STEP_TAGS]
    assert remote.branches == {"main": "a" * 40, "feature-x": "b" * 40}
    assert remote.tags == TAGS
    assert remote.calls[0] == ("push_ref", "refs/remotes/origin/main", "refs/heads/main")


def test_execute_is_idempotent(local: LocalRepository) -> None:
    """Re-running with no new commits leaves the remote state unchanged."""
    remote = FakeRemote(LOCAL_REFS, branches={"main": "0" * 40}, head="main", local_tags=TAGS)
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main")
    executor = SyncExecutor()

    first = executor.execute(plan, local, remote)
    state_after_first = remote.state()
    second = executor.execute(plan, local, remote)

    assert first.success and second.success
    assert remote.state() == state_after_first


def test_default_branch_failure_aborts_run(local: LocalRepository) -> None:
    """No tag push after a failed default-branch push."""
    remote = FakeRemote(LOCAL_REFS, local_tags=TAGS, failures={("push_ref", "refs/heads/main")})
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert not report.success
    assert report.failed_step == STEP_DEFAULT_BRANCH
    assert "default-branch" in report.summary()
    assert remote.calls == [("push_ref", "refs/remotes/origin/main", "refs/heads/main")]
    assert remote.tags == {}


def test_tag_failure_is_fatal_and_skips_prune(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS, local_tags=TAGS, failures={("push_tags", "")})
    plan = build_plan(_event(), FIRE_DEFAULT, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert report.failed_step == STEP_TAGS
    assert ("list_heads",) not in remote.calls


def test_prune_deletes_everything_but_default(local: LocalRepository) -> None:
    remote = FakeRemote(
        LOCAL_REFS,
        branches={"main": "a" * 40, "feat-a": "d" * 40, "feat-b": "e" * 40},
        head="main",
    )
    plan = build_plan(_event(), FIRE_DEFAULT, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    deletions = [c[1] for c in remote.calls if c[0] == "delete_branch"]
    assert sorted(deletions) == ["feat-a", "feat-b"]
    assert sorted(report.pruned) == ["feat-a", "feat-b"]
    assert report.steps[-1].step == STEP_PRUNE


def test_prune_failure_is_a_warning(local: LocalRepository) -> None:
    """A failed deletion of feat-a still lets feat-b be attempted."""
    remote = FakeRemote(
        LOCAL_REFS,
        branches={"main": "a" * 40, "feat-a": "d" * 40, "feat-b": "e" * 40},
        head="main",
        failures={("delete_branch", "feat-a")},
    )
    plan = build_plan(_event(), FIRE_DEFAULT, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert ("delete_branch", "feat-a") in remote.calls
    assert ("delete_branch", "feat-b") in remote.calls
    assert report.success
    assert report.pruned == ["feat-b"]
    assert len(report.warnings) == 1
    assert "feat-a" in report.warnings[0]
    assert "warning" in report.summary()


def test_prune_keeps_mirrored_feature_branch(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS, branches={"main": "a" * 40, "stale": "d" * 40}, head="main")
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert report.pruned == ["stale"]
    assert set(remote.branches) == {"main", "feature-x"}


def test_prune_listing_failure_is_a_warning(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS, failures={("list_heads", "")})
    plan = build_plan(_event(), FIRE_DEFAULT, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert report.success
    assert report.warnings


def test_dry_run_mutates_nothing(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS, branches={"main": "0" * 40, "old": "d" * 40}, head="main")
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main", prune=True)
    before = remote.state()

    report = SyncExecutor(dry_run=True).execute(plan, local, remote)

    assert report.success
    assert remote.state() == before
    assert [c[0] for c in remote.calls] == ["list_heads"]


def test_cancelled_run_stops_before_pushing(local: LocalRepository) -> None:
    remote = FakeRemote(LOCAL_REFS)
    plan = build_plan(_event(), FIRE_DEFAULT, "main")

    report = SyncExecutor(is_cancelled=lambda: True).execute(plan, local, remote)

    assert report.superseded
    assert not report.success
    assert remote.calls == []


def test_force_pushes_are_security_events(local: LocalRepository, capsys) -> None:
    """Each overwrite of a remote ref is recorded; dry runs record nothing."""
    remote = FakeRemote(LOCAL_REFS, local_tags=TAGS)
    plan = build_plan(_event("refs/heads/feature-x"), FIRE_ALL, "main")

    SyncExecutor().execute(plan, local, remote)
    err = capsys.readouterr().err
    assert err.count("[SECURITY:FORCE_PUSH]") == 3
    assert "refs/remotes/origin/feature-x -> refs/heads/feature-x" in err

    SyncExecutor(dry_run=True).execute(plan, local, remote)
    assert "FORCE_PUSH" not in capsys.readouterr().err


def test_prune_deletes_token_like_branch_names(local: LocalRepository) -> None:
    remote = FakeRemote(
        LOCAL_REFS, branches={"main": "0" * 40, "fix/ghs_cache": "e" * 40}, head="main"
    )
    plan = build_plan(_event(), FIRE_DEFAULT, "main", prune=True)

    report = SyncExecutor().execute(plan, local, remote)

    assert report.pruned == ["fix/ghs_cache"]
    assert ("delete_branch", "fix/ghs_cache") in remote.calls
