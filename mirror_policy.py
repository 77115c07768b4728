#!/usr/bin/env python3
"""Decide whether a push event should be mirrored, and which refs to sync.

The decision is a pure function of the policy and the event, so the whole
truth table can be tested without network access:

    event             ref               policy        fire  default current
    manual dispatch   any               any           yes   yes     yes
    push              default branch    any           yes   yes     no
    push              feature branch    always        yes   yes     yes
    push              feature branch    keyword hit   yes   yes     yes
    push              feature branch    keyword miss  no    no      no
    push              tag / other ref   any           no    no      no

Keyword matching scans the commit messages of the whole push joined with a
single space. A keyword split across two messages ("abc SY", "NC def")
therefore does not match, because the joined text reads "SY NC".
"""

from __future__ import annotations

from dataclasses import dataclass

from config import EventKind, MirrorPolicy, PolicyMode, PushEvent


@dataclass(frozen=True)
class MirrorDecision:
    """Outcome of the policy check for one event."""
    fire: bool
    push_default: bool = False
    push_current: bool = False
    reason: str = ""


def keyword_matches(keyword: str, commit_messages) -> bool:
    """True when `keyword` occurs in the space-joined commit messages."""
    if not keyword:
        return False
    return keyword in " ".join(commit_messages)


def should_mirror(policy: MirrorPolicy, event: PushEvent) -> MirrorDecision:
    if event.event_kind is EventKind.MANUAL_DISPATCH:
        return MirrorDecision(True, True, True, "manual dispatch")

    branch = event.branch
    if branch is None:
        return MirrorDecision(False, reason=f"ref '{event.ref}' is not a branch")

    if event.is_default_branch:
        return MirrorDecision(True, True, False, "push to default branch")

    if policy.mode is PolicyMode.ALWAYS:
        return MirrorDecision(True, True, True, "feature branch push, policy always")

    if keyword_matches(policy.keyword or "", event.commit_messages):
        return MirrorDecision(
            True, True, True, f"keyword '{policy.keyword}' found in commit messages"
        )
    return MirrorDecision(
        False, reason=f"keyword '{policy.keyword}' not found in commit messages"
    )
