"""Tests for remote default-branch discovery."""

from __future__ import annotations

from unittest.mock import Mock

from git_remote import GitResult
from reconciler import discover_remote_default, parse_symref_head


def test_parse_symref_head_extracts_branch() -> None:
    output = "ref: refs/heads/master\tHEAD\n1234567890abcdef\tHEAD\n"
    assert parse_symref_head(output) == "master"


def test_parse_symref_head_keeps_slashes_in_branch_names() -> None:
    assert parse_symref_head("ref: refs/heads/release/2.x\tHEAD\n") == "release/2.x"


def test_parse_symref_head_without_ref_line() -> None:
    """An empty project answers with nothing at all."""
    assert parse_symref_head("") is None
    assert parse_symref_head("1234567890abcdef\tHEAD\n") is None


def test_discover_returns_remote_head() -> None:
    remote = Mock()
    remote.symref_head.return_value = GitResult(
        True, "git ls-remote", stdout="ref: refs/heads/master\tHEAD\nabc\tHEAD\n"
    )
    assert discover_remote_default(remote, "main") == "master"


def test_discover_falls_back_to_source_default_for_new_project() -> None:
    """A remote with no HEAD adopts the source naming."""
    remote = Mock()
    remote.symref_head.return_value = GitResult(True, "git ls-remote", stdout="")
    assert discover_remote_default(remote, "main") == "main"


def test_discover_falls_back_when_query_fails() -> None:
    remote = Mock()
    remote.symref_head.return_value = GitResult(
        False, "git ls-remote", stderr="fatal: unable to access", returncode=128
    )
    assert discover_remote_default(remote, "trunk") == "trunk"
