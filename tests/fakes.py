"""In-memory stand-ins for the git remote used across tests."""

from __future__ import annotations

from typing import Dict, Optional, Set, Tuple

from config import BRANCH_REF_PREFIX
from git_remote import GitResult


class FakeRemote:
    """Models the ref state of a GitLab remote.

    `local_refs` maps source tracking refs to commit ids; `local_tags` are the
    tags a `push --tags` would send. Operations listed in `failures` as
    (operation, argument) pairs report a transport failure.
    """

    name = "https://gitlab.com/team/proj.git"

    def __init__(
        self,
        local_refs: Dict[str, str],
        branches: Optional[Dict[str, str]] = None,
        head: Optional[str] = None,
        local_tags: Optional[Dict[str, str]] = None,
        failures: Optional[Set[Tuple[str, str]]] = None,
    ) -> None:
        self.local_refs = local_refs
        self.local_tags = dict(local_tags or {})
        self.branches: Dict[str, str] = dict(branches or {})
        self.tags: Dict[str, str] = {}
        self.head = head
        self.failures = failures or set()
        self.calls = []

    def state(self):
        return dict(self.branches), dict(self.tags), self.head

    def _fail(self, operation: str) -> GitResult:
        return GitResult(False, f"git {operation}", stderr="remote rejected", returncode=1)

    def symref_head(self) -> GitResult:
        self.calls.append(("symref_head",))
        if ("symref_head", "") in self.failures:
            return self._fail("ls-remote")
        if self.head is None:
            return GitResult(True, "git ls-remote --symref")
        sha = self.branches.get(self.head, "0" * 40)
        stdout = f"ref: refs/heads/{self.head}\tHEAD\n{sha}\tHEAD\n"
        return GitResult(True, "git ls-remote --symref", stdout=stdout)

    def list_heads(self) -> GitResult:
        self.calls.append(("list_heads",))
        if ("list_heads", "") in self.failures:
            return self._fail("ls-remote")
        stdout = "".join(
            f"{sha}\trefs/heads/{branch}\n" for branch, sha in sorted(self.branches.items())
        )
        return GitResult(True, "git ls-remote --heads", stdout=stdout)

    def push_ref(self, local_ref: str, remote_ref: str, force: bool = True) -> GitResult:
        self.calls.append(("push_ref", local_ref, remote_ref))
        if ("push_ref", remote_ref) in self.failures:
            return self._fail("push")
        branch = remote_ref[len(BRANCH_REF_PREFIX):]
        self.branches[branch] = self.local_refs[local_ref]
        if self.head is None:
            # GitLab adopts the first pushed branch as default
            self.head = branch
        return GitResult(True, "git push")

    def push_tags(self, force: bool = True) -> GitResult:
        self.calls.append(("push_tags",))
        if ("push_tags", "") in self.failures:
            return self._fail("push --tags")
        self.tags.update(self.local_tags)
        return GitResult(True, "git push --tags")

    def delete_branch(self, branch: str) -> GitResult:
        self.calls.append(("delete_branch", branch))
        if ("delete_branch", branch) in self.failures:
            return self._fail("push --delete")
        self.branches.pop(branch, None)
        return GitResult(True, "git push --delete")
