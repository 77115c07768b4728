#!/usr/bin/env python3
"""GitLab API wrapper: project existence probe and project creation."""

from __future__ import annotations

import sys
from typing import Optional, Protocol

import gitlab
import requests

from config import Visibility
from logging_utils import Logger
from repo_ref import RepositoryRef

# Exit codes
EXIT_AUTH_ERROR = 40
EXIT_GITLAB_ERROR = 30

PROBE_TIMEOUT_S = 15


class ProjectCreator(Protocol):
    """Creates the target project when the probe reports it missing."""

    def create_project(
        self, ref: RepositoryRef, visibility: Visibility, default_branch: Optional[str]
    ) -> None: ...


def project_exists(ref: RepositoryRef, token: Optional[str] = None) -> bool:
    """Ask GET /api/v4/projects/:path whether the project is there.

    Private projects need a token. Any failure, including transport errors,
    reads as "does not exist"; the probe is never retried.
    """
    url = f"https://{ref.host}/api/v4/projects/{ref.api_id}"
    headers = {"PRIVATE-TOKEN": token} if token else {}
    try:
        response = requests.get(url, headers=headers, timeout=PROBE_TIMEOUT_S)
    except requests.RequestException as e:
        Logger.debug(f"project probe for {ref} failed: {e}")
        return False

    if 200 <= response.status_code < 300:
        return True
    Logger.debug(f"project probe for {ref} returned {response.status_code}")
    return False


class GitLabTarget:
    """Wrapper around the GitLab API of the target instance."""

    def __init__(self, url: str, token: Optional[str]) -> None:
        self.url = url
        self.token = token
        self.api: Optional[gitlab.Gitlab] = None

    def connect(self) -> None:
        Logger.info(f"init gitlab API: {self.url}")
        if not self.token:
            Logger.error("gitlab token not provided (use --gitlab-token or GITLAB_TOKEN)")
            sys.exit(EXIT_AUTH_ERROR)
        try:
            self.api = gitlab.Gitlab(url=self.url, private_token=self.token)
            self.api.auth()
        except gitlab.exceptions.GitlabAuthenticationError as e:
            Logger.error(f"authentication error (gitlab): {e}")
            sys.exit(EXIT_AUTH_ERROR)
        except Exception as e:
            Logger.error(f"failed to initialize gitlab API: {e}")
            sys.exit(EXIT_GITLAB_ERROR)

    def _require_api(self) -> gitlab.Gitlab:
        if self.api is None:
            Logger.error("gitlab API not initialized")
            sys.exit(EXIT_GITLAB_ERROR)
        return self.api

    def project_exists(self, ref: RepositoryRef) -> bool:
        return project_exists(ref, self.token)

    def create_project(
        self, ref: RepositoryRef, visibility: Visibility, default_branch: Optional[str]
    ) -> None:
        api = self._require_api()
        try:
            namespace = api.namespaces.get(ref.namespace)
        except gitlab.exceptions.GitlabGetError as e:
            Logger.error(f"namespace '{ref.namespace}' not found or not accessible: {e}")
            sys.exit(EXIT_GITLAB_ERROR)

        payload = {
            "name": ref.name,
            "path": ref.name,
            "namespace_id": namespace.id,
            "visibility": visibility.value,
        }
        Logger.info(
            f"creating GitLab project {ref.web_url} "
            f"(visibility: {visibility.value}, default branch: {default_branch or 'unset'})"
        )
        try:
            if default_branch:
                try:
                    api.projects.create({**payload, "default_branch": default_branch})
                except gitlab.exceptions.GitlabCreateError as e:
                    if "default_branch" not in str(e):
                        raise
                    Logger.warn(
                        "GitLab rejected the default branch on create; "
                        "retrying without it"
                    )
                    api.projects.create(payload)
                    self.set_default_branch(ref, default_branch)
            else:
                api.projects.create(payload)
        except gitlab.exceptions.GitlabCreateError as e:
            Logger.error(f"failed to create project '{ref.namespace_path}': {e}")
            Logger.error(f"create it manually at: https://{ref.host}/projects/new")
            sys.exit(EXIT_GITLAB_ERROR)
        Logger.info(f"created project: {ref.web_url}")

    def set_default_branch(self, ref: RepositoryRef, branch: str) -> bool:
        """Point the project's default branch at `branch`. Failure is only a warning."""
        api = self._require_api()
        try:
            project = api.projects.get(ref.namespace_path)
            project.default_branch = branch
            project.save()
        except gitlab.exceptions.GitlabError as e:
            Logger.warn(
                f"unable to set default branch to '{branch}' ({e}); "
                "adjust it manually in GitLab"
            )
            return False
        Logger.info(f"set GitLab default branch to {branch}")
        return True
