#!/usr/bin/env python3
"""GitHub API wrapper for the source repository's settings and secrets."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Optional, Protocol

import github

if TYPE_CHECKING:
    from github.Repository import Repository

from config import GitHubConfig
from logging_utils import Logger

# Exit codes
EXIT_AUTH_ERROR = 40
EXIT_GITHUB_ERROR = 31


class SecretStore(Protocol):
    """Where the CI job reads its token and mirror variables from."""

    def store_secret(self, name: str, value: str) -> None: ...
    def store_variable(self, name: str, value: str) -> None: ...


class GitHubSource:
    """Wrapper around the GitHub API for one source repository."""

    def __init__(self, config: GitHubConfig) -> None:
        self.config = config
        self.api: Optional[github.Github] = None
        self.repo: Optional["Repository"] = None

    def connect(self) -> None:
        Logger.info(f"init github API: {self.config.api_url}")
        if not self.config.token:
            Logger.error("github token not provided (use --github-token or GITHUB_TOKEN)")
            sys.exit(EXIT_AUTH_ERROR)
        if not self.config.repository:
            Logger.error(
                "github repository not provided (use --github-repo or GITHUB_REPOSITORY)"
            )
            sys.exit(EXIT_GITHUB_ERROR)
        try:
            auth = github.Auth.Token(self.config.token)
            if self.config.api_url != "https://api.github.com":
                self.api = github.Github(base_url=self.config.api_url, auth=auth)
            else:
                self.api = github.Github(auth=auth)
            self.repo = self.api.get_repo(self.config.repository)
            Logger.debug(f"github repository: {self.repo.full_name}")
        except github.BadCredentialsException:
            Logger.error("authentication failed (github): invalid token")
            sys.exit(EXIT_AUTH_ERROR)
        except github.UnknownObjectException:
            Logger.error(
                f"not found (404): repository '{self.config.repository}' does not "
                "exist or is not visible to this token"
            )
            sys.exit(EXIT_GITHUB_ERROR)
        except github.GithubException as e:
            Logger.error(f"github error: {e}")
            sys.exit(EXIT_GITHUB_ERROR)

    def _require_repo(self) -> "Repository":
        if self.repo is None:
            Logger.error("github API not initialized")
            sys.exit(EXIT_GITHUB_ERROR)
        return self.repo

    def default_branch(self) -> str:
        return self._require_repo().default_branch

    def store_secret(self, name: str, value: str) -> None:
        repo = self._require_repo()
        try:
            repo.create_secret(name, value, "actions")
        except github.GithubException as e:
            Logger.error(f"failed to set actions secret {name}: {e}")
            sys.exit(EXIT_GITHUB_ERROR)
        Logger.security_event("SECRET_CONFIGURED", f"actions secret {name} configured")

    def store_variable(self, name: str, value: str) -> None:
        """Create or update an Actions variable. An empty value removes it."""
        repo = self._require_repo()
        try:
            try:
                existing = repo.get_variable(name)
            except github.UnknownObjectException:
                existing = None

            if not value:
                if existing is not None:
                    existing.delete()
                    Logger.info(f"removed actions variable {name}")
                return

            if existing is None:
                repo.create_variable(name, value)
            else:
                existing.edit(value)
        except github.GithubException as e:
            Logger.error(f"failed to set actions variable {name}: {e}")
            sys.exit(EXIT_GITHUB_ERROR)
        Logger.info(f"actions variable {name} configured")
