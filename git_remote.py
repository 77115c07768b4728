#!/usr/bin/env python3
"""Thin wrappers around the git CLI for the source checkout and the target remote."""

from __future__ import annotations

import os
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol, Sequence

from config import BRANCH_REF_PREFIX
from logging_utils import Logger
from security import SecurityValidator

DEFAULT_GIT_TIMEOUT_S = 600

ASKPASS_USERNAME_VAR = "GH_MIRROR_GIT_USERNAME"
ASKPASS_PASSWORD_VAR = "GH_MIRROR_GIT_PASSWORD"


@dataclass(frozen=True)
class GitResult:
    """Outcome of one git invocation.

    `stdout` and `stderr` are kept verbatim because callers parse them (ref
    names can look like tokens). Use `detail` for anything that gets logged.
    """
    success: bool
    command: str
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    @property
    def detail(self) -> str:
        text = SecurityValidator.sanitize_for_logging((self.stderr or self.stdout).strip())
        return text or f"exit code {self.returncode}"


class RemoteHandle(Protocol):
    """Operations the reconciler and sync executor need from a remote."""

    @property
    def name(self) -> str: ...
    def symref_head(self) -> GitResult: ...
    def list_heads(self) -> GitResult: ...
    def push_ref(self, local_ref: str, remote_ref: str, force: bool = True) -> GitResult: ...
    def push_tags(self, force: bool = True) -> GitResult: ...
    def delete_branch(self, branch: str) -> GitResult: ...


class LocalRepoHandle(Protocol):
    """Operations the sync executor needs from the source checkout."""

    def tracking_ref(self, branch: str) -> str: ...


def run_git(
    args: Sequence[str],
    *,
    cwd: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
    timeout: int = DEFAULT_GIT_TIMEOUT_S,
) -> GitResult:
    """Run `git <args>` and report the outcome instead of raising."""
    command = SecurityValidator.sanitize_for_logging("git " + " ".join(args))
    Logger.debug(f"running: {command}")
    try:
        completed = subprocess.run(
            ["git", *args],
            cwd=cwd,
            check=True,
            capture_output=True,
            text=True,
            timeout=timeout,
            env=env,
        )
    except subprocess.TimeoutExpired:
        Logger.security_event("GIT_TIMEOUT", f"{command} timed out after {timeout}s")
        return GitResult(False, command, stderr=f"timed out after {timeout}s", returncode=-1)
    except subprocess.CalledProcessError as e:
        return GitResult(
            False,
            command,
            stdout=e.stdout or "",
            stderr=e.stderr or "",
            returncode=e.returncode,
        )
    except OSError as e:
        return GitResult(False, command, stderr=f"cannot run git: {e}", returncode=-1)

    return GitResult(
        True,
        command,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        returncode=completed.returncode,
    )


def parse_ls_remote_heads(output: str) -> List[str]:
    """Branch names from `git ls-remote --heads` output."""
    branches: List[str] = []
    for line in output.splitlines():
        parts = line.split()
        if len(parts) != 2 or not parts[1].startswith(BRANCH_REF_PREFIX):
            continue
        branches.append(parts[1][len(BRANCH_REF_PREFIX):])
    return branches


class LocalRepository:
    """The source checkout, with the source forge configured as a remote."""

    def __init__(
        self,
        path: str = ".",
        source_remote: str = "origin",
        timeout: int = DEFAULT_GIT_TIMEOUT_S,
    ) -> None:
        self.path = path
        self.source_remote = source_remote
        self.timeout = timeout

    def tracking_ref(self, branch: str) -> str:
        return f"refs/remotes/{self.source_remote}/{branch}"

    def fetch_source(self) -> GitResult:
        """Fetch all branches and tags from the source remote."""
        return run_git(
            ["fetch", "--prune", "--tags", self.source_remote],
            cwd=self.path,
            timeout=self.timeout,
        )

    def default_branch(self) -> Optional[str]:
        """Best local guess at the source default branch.

        Tries `<remote>/HEAD` first, then the checked-out branch.
        """
        result = run_git(
            ["rev-parse", "--abbrev-ref", f"{self.source_remote}/HEAD"],
            cwd=self.path,
            timeout=self.timeout,
        )
        prefix = f"{self.source_remote}/"
        if result.success and result.stdout.strip().startswith(prefix):
            return result.stdout.strip()[len(prefix):]

        result = run_git(
            ["symbolic-ref", "--short", "HEAD"], cwd=self.path, timeout=self.timeout
        )
        if result.success and result.stdout.strip():
            return result.stdout.strip()
        return None


class GitRemote:
    """A target remote addressed by URL, authenticated through GIT_ASKPASS."""

    def __init__(
        self,
        url: str,
        token: Optional[str] = None,
        *,
        username: str = "oauth2",
        cwd: Optional[str] = None,
        timeout: int = DEFAULT_GIT_TIMEOUT_S,
    ) -> None:
        self.url = url
        self.token = token
        self.username = username
        self.cwd = cwd
        self.timeout = timeout

    @property
    def name(self) -> str:
        return self.url

    @staticmethod
    def _create_askpass_script() -> str:
        """Create a helper that answers git's prompts from the environment."""
        fd, path = tempfile.mkstemp(prefix="gh_mirror_askpass_", text=True)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as script:
                script.write("#!/bin/sh\n")
                script.write("case \"$1\" in\n")
                script.write(f"  *Username*) printf '%s\\n' \"${ASKPASS_USERNAME_VAR}\" ;;\n")
                script.write(f"  *Password*) printf '%s\\n' \"${ASKPASS_PASSWORD_VAR}\" ;;\n")
                script.write("  *) exit 1 ;;\n")
                script.write("esac\n")
            os.chmod(path, 0o700)
        except OSError:
            os.unlink(path)
            raise
        return path

    @staticmethod
    def _cleanup_askpass_script(path: Optional[str]) -> None:
        if not path:
            return
        try:
            if os.path.exists(path):
                os.remove(path)
        except OSError as error:
            Logger.warn(f"failed to clean up temporary credential helper: {error}")

    @contextmanager
    def _git_env(self) -> Iterator[Optional[Dict[str, str]]]:
        """Environment for one git call, with credentials when we have a token."""
        if not (self.token and self.url.startswith("https://")):
            yield None
            return

        askpass_script = self._create_askpass_script()
        Logger.security_event("CREDENTIAL_HELPER", f"askpass helper created for {self.url}")
        env = os.environ.copy()
        env.update(
            {
                "GIT_ASKPASS": askpass_script,
                "GIT_TERMINAL_PROMPT": "0",
                ASKPASS_USERNAME_VAR: self.username,
                ASKPASS_PASSWORD_VAR: self.token,
            }
        )
        try:
            yield env
        finally:
            self._cleanup_askpass_script(askpass_script)

    def _run(self, args: Sequence[str]) -> GitResult:
        with self._git_env() as env:
            return run_git(args, cwd=self.cwd, env=env, timeout=self.timeout)

    def symref_head(self) -> GitResult:
        return self._run(["ls-remote", "--symref", self.url, "HEAD"])

    def list_heads(self) -> GitResult:
        return self._run(["ls-remote", "--heads", self.url])

    def push_ref(self, local_ref: str, remote_ref: str, force: bool = True) -> GitResult:
        args = ["push"]
        if force:
            args.append("--force")
        args.extend([self.url, f"{local_ref}:{remote_ref}"])
        return self._run(args)

    def push_tags(self, force: bool = True) -> GitResult:
        args = ["push"]
        if force:
            args.append("--force")
        args.extend(["--tags", self.url])
        return self._run(args)

    def delete_branch(self, branch: str) -> GitResult:
        return self._run(["push", self.url, "--delete", f"{BRANCH_REF_PREFIX}{branch}"])
