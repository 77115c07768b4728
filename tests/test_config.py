"""Tests for policy construction, events and the environment contract."""

from __future__ import annotations

import pytest

from config import (
    DEFAULT_KEYWORD,
    EventKind,
    MirrorEnvironment,
    MirrorPolicy,
    PolicyMode,
    PushEvent,
)
from errors import ConfigurationError
from repo_ref import parse_repository_ref


@pytest.mark.parametrize("keyword", ["", "   ", None])
def test_keyword_policy_rejects_empty_keyword(keyword) -> None:
    with pytest.raises(ConfigurationError):
        MirrorPolicy(PolicyMode.KEYWORD, keyword)


def test_keyword_is_trimmed() -> None:
    assert MirrorPolicy.with_keyword("  SYNC_TO_GITLAB ").keyword == "SYNC_TO_GITLAB"


def test_always_policy_carries_no_keyword() -> None:
    assert MirrorPolicy(PolicyMode.ALWAYS, "ignored").keyword is None
    assert MirrorPolicy.always() == MirrorPolicy(PolicyMode.ALWAYS)


def test_from_strings() -> None:
    assert MirrorPolicy.from_strings(None, None) == MirrorPolicy.always()
    assert MirrorPolicy.from_strings(" Always ", "x").mode is PolicyMode.ALWAYS
    assert MirrorPolicy.from_strings("keyword", None).keyword == DEFAULT_KEYWORD
    assert MirrorPolicy.from_strings("keyword", "GO").keyword == "GO"


def test_from_strings_rejects_bad_input() -> None:
    with pytest.raises(ConfigurationError):
        MirrorPolicy.from_strings("sometimes", None)
    with pytest.raises(ConfigurationError):
        MirrorPolicy.from_strings("keyword", "")


def test_configuration_errors_are_value_errors() -> None:
    assert issubclass(ConfigurationError, ValueError)


@pytest.mark.parametrize(
    "ref, branch",
    [
        ("refs/heads/main", "main"),
        ("refs/heads/feature/login", "feature/login"),
        ("feature-x", "feature-x"),
        ("refs/tags/v1.0.0", None),
        ("refs/pull/1/merge", None),
        ("", None),
    ],
)
def test_push_event_branch(ref: str, branch) -> None:
    assert PushEvent(ref, EventKind.PUSH, "main").branch == branch


def test_push_event_default_branch_and_messages() -> None:
    event = PushEvent("refs/heads/main", EventKind.PUSH, "main", ["a", "b"])
    assert event.is_default_branch
    assert event.commit_messages == ("a", "b")


def test_environment_contract_for_keyword_policy() -> None:
    repo = parse_repository_ref("git@gitlab.com:team/proj.git")
    env = MirrorEnvironment(MirrorPolicy.with_keyword("SYNC"), repo).to_env()
    assert env == {
        "FEATURE_PUSH_POLICY": "keyword",
        "OVERRIDE_KEYWORD": "SYNC",
        "GITLAB_REPO": "gitlab.com/team/proj.git",
    }
    assert MirrorEnvironment.from_env(env) == MirrorEnvironment(MirrorPolicy.with_keyword("SYNC"), repo)


def test_environment_contract_for_always_policy() -> None:
    env = MirrorEnvironment(MirrorPolicy.always()).to_env()
    assert env["FEATURE_PUSH_POLICY"] == "always"
    assert env["OVERRIDE_KEYWORD"] == ""
    assert env["GITLAB_REPO"] == ""


def test_environment_from_env_normalizes_repo() -> None:
    loaded = MirrorEnvironment.from_env(
        {"GITLAB_REPO": "team/proj", "FEATURE_PUSH_POLICY": "always", "OVERRIDE_KEYWORD": ""},
        default_host="gitlab.example.com",
    )
    assert str(loaded.gitlab_repo) == "gitlab.example.com/team/proj.git"
    assert loaded.policy.mode is PolicyMode.ALWAYS
