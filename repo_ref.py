#!/usr/bin/env python3
"""Normalization of user-supplied GitLab repository identifiers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import quote

from errors import NormalizationError
from security import SecurityValidator

DEFAULT_GITLAB_HOST = "gitlab.com"

SCHEME_PREFIXES = ("ssh://", "https://", "http://")
# user@host:path
SCP_LIKE_PATTERN = re.compile(r"^[^@/:]+@(?P<host>[^:/]+):(?P<path>.*)$")


@dataclass(frozen=True)
class RepositoryRef:
    """Canonical `host/namespace/.../repo` reference.

    `namespace_path` is stored without the `.git` suffix; `str()` renders the
    canonical `host/namespace_path.git` form used in configuration.
    """
    host: str
    namespace_path: str

    def __str__(self) -> str:
        return f"{self.host}/{self.namespace_path}.git"

    @property
    def namespace(self) -> str:
        return self.namespace_path.rpartition("/")[0]

    @property
    def name(self) -> str:
        return self.namespace_path.rpartition("/")[2]

    @property
    def api_id(self) -> str:
        """URL-encoded project path as accepted by /api/v4/projects/:id."""
        return quote(self.namespace_path, safe="")

    @property
    def https_url(self) -> str:
        return f"https://{self}"

    @property
    def web_url(self) -> str:
        return f"https://{self.host}/{self.namespace_path}"


def _strip_userinfo(segment: str) -> str:
    return segment.rpartition("@")[2]


def normalize(raw: str, default_host: str = DEFAULT_GITLAB_HOST) -> RepositoryRef:
    """Turn an SSH, HTTPS or bare `[host/]ns/repo` string into a RepositoryRef.

    Never fails and never touches the network. An empty input yields a ref
    with an empty path; rejecting that is left to `parse_repository_ref`.
    """
    cleaned = raw.strip().rstrip("/")
    if cleaned.endswith(".git"):
        cleaned = cleaned[: -len(".git")]

    scheme = ""
    for prefix in SCHEME_PREFIXES:
        if cleaned.lower().startswith(prefix):
            scheme = prefix
            cleaned = cleaned[len(prefix):]
            break

    if not scheme:
        match = SCP_LIKE_PATTERN.match(cleaned)
        if match:
            cleaned = f"{match.group('host')}/{match.group('path')}"

    first_segment, sep, remainder = cleaned.partition("/")
    candidate_host = _strip_userinfo(first_segment)
    if scheme == "ssh://":
        # ssh ports mean nothing to the HTTPS API
        candidate_host = candidate_host.partition(":")[0]

    if sep and ("." in candidate_host or candidate_host.lower() == default_host.lower()):
        host, path = candidate_host, remainder
    else:
        host, path = default_host, cleaned

    path = path.lstrip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    host = host.strip("/").lower()
    return RepositoryRef(host=host, namespace_path=path)


def parse_repository_ref(raw: str, default_host: str = DEFAULT_GITLAB_HOST) -> RepositoryRef:
    """Normalize and validate a repository identifier from configuration."""
    if not raw or not raw.strip():
        raise NormalizationError("repository identifier cannot be empty")

    ref = normalize(raw, default_host)
    if "/" not in ref.namespace_path:
        raise NormalizationError(
            f"repository '{raw.strip()}' must include a namespace "
            "(expected <host>/<namespace>/<repo>)"
        )
    try:
        SecurityValidator.validate_host(ref.host)
        SecurityValidator.validate_namespace_path(ref.namespace_path)
    except ValueError as e:
        raise NormalizationError(f"invalid repository '{raw.strip()}': {e}") from e
    return ref
