#!/usr/bin/env python3
"""Discover which branch the target remote treats as its default."""

from __future__ import annotations

from typing import Optional

from config import BRANCH_REF_PREFIX
from git_remote import RemoteHandle
from logging_utils import Logger


def parse_symref_head(output: str) -> Optional[str]:
    """Extract the branch HEAD points to from `ls-remote --symref <remote> HEAD`.

    The relevant line looks like ``ref: refs/heads/main\tHEAD``.
    """
    for line in output.splitlines():
        if not line.startswith("ref:"):
            continue
        parts = line[len("ref:"):].split()
        if not parts:
            continue
        target = parts[0]
        if target.startswith(BRANCH_REF_PREFIX):
            target = target[len(BRANCH_REF_PREFIX):]
        if target:
            return target
    return None


def discover_remote_default(remote: RemoteHandle, source_default: str) -> str:
    """Return the remote default branch, or `source_default` when it has none.

    A new or empty project has no HEAD symref yet; it then adopts the
    source default branch name.
    """
    result = remote.symref_head()
    branch = parse_symref_head(result.stdout) if result.success else None

    if branch is None:
        if not result.success:
            Logger.warn(f"could not query remote HEAD: {result.detail}")
        Logger.info(
            f"remote has no default branch yet, using source default: {source_default}"
        )
        return source_default

    if branch != source_default:
        Logger.warn(
            f"default branch mismatch: source '{source_default}' will overwrite "
            f"remote default '{branch}'"
        )
    else:
        Logger.info(f"remote default branch is: {branch}")
    return branch
