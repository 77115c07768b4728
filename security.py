#!/usr/bin/env python3
"""Security validation utilities for gh-mirror."""

import re


class SecurityValidator:
    """Input validation for mirror configuration and log sanitization."""

    MAX_HOST_LENGTH = 253
    MAX_PATH_LENGTH = 255
    MAX_BRANCH_LENGTH = 255
    MAX_KEYWORD_LENGTH = 100

    SAFE_HOST_PATTERN = re.compile(r"^[A-Za-z0-9.-]+(:[0-9]{1,5})?$")
    SAFE_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9._/-]+$")
    SAFE_GITHUB_REPO_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")

    # Redaction rules applied to everything that reaches the console
    REDACTIONS = [
        (r"(https?://)[^:/@\s]+:[^@\s]+@", r"\1[REDACTED]@"),
        (r"token[=:]\s*[^\s]+", "token=[REDACTED]"),
        (r"password[=:]\s*[^\s]+", "password=[REDACTED]"),
        (r"glpat-[A-Za-z0-9_-]+", "[GITLAB_TOKEN_REDACTED]"),
        (r"github_pat_[A-Za-z0-9_]+", "[GITHUB_TOKEN_REDACTED]"),
        (r"gh[pousr]_[A-Za-z0-9_]+", "[GITHUB_TOKEN_REDACTED]"),
    ]

    @staticmethod
    def _reject_control_chars(value: str, what: str) -> None:
        if "\x00" in value or any(ord(c) < 32 for c in value):
            raise ValueError(f"{what} contains null bytes or control characters")

    @classmethod
    def validate_host(cls, host: str) -> str:
        """Validate a forge hostname (optionally with a port)."""
        if not host or not isinstance(host, str):
            raise ValueError("Host must be a non-empty string")
        if len(host) > cls.MAX_HOST_LENGTH:
            raise ValueError(f"Host exceeds maximum length of {cls.MAX_HOST_LENGTH}")
        cls._reject_control_chars(host, "Host")
        if not cls.SAFE_HOST_PATTERN.match(host):
            raise ValueError(f"Host contains invalid characters: {host}")
        return host

    @classmethod
    def validate_namespace_path(cls, path: str) -> str:
        """Validate a GitLab `namespace/.../project` path."""
        if not path or not isinstance(path, str):
            raise ValueError("Project path must be a non-empty string")
        if len(path) > cls.MAX_PATH_LENGTH:
            raise ValueError(
                f"Project path exceeds maximum length of {cls.MAX_PATH_LENGTH}"
            )
        cls._reject_control_chars(path, "Project path")
        if ".." in path:
            raise ValueError("Project path contains path traversal sequences")
        if not cls.SAFE_NAMESPACE_PATTERN.match(path):
            raise ValueError("Project path contains invalid characters")
        return path

    @classmethod
    def validate_branch_name(cls, branch: str) -> str:
        """Validate a branch name before it is placed into a refspec."""
        if not branch or not isinstance(branch, str):
            raise ValueError("Branch name must be a non-empty string")
        if len(branch) > cls.MAX_BRANCH_LENGTH:
            raise ValueError(
                f"Branch name exceeds maximum length of {cls.MAX_BRANCH_LENGTH}"
            )
        cls._reject_control_chars(branch, "Branch name")
        if (
            ".." in branch
            or branch.startswith(("-", "/"))
            or branch.endswith(("/", ".lock"))
            or any(c in branch for c in " ~^:?*[\\")
            or "@{" in branch
        ):
            raise ValueError(f"Branch name is not a valid git ref: {branch}")
        return branch

    @classmethod
    def validate_keyword(cls, keyword: str) -> str:
        """Validate the commit-message opt-in keyword."""
        if not isinstance(keyword, str) or not keyword.strip():
            raise ValueError("Keyword cannot be empty when keyword mirroring is enabled")
        keyword = keyword.strip()
        if len(keyword) > cls.MAX_KEYWORD_LENGTH:
            raise ValueError(
                f"Keyword exceeds maximum length of {cls.MAX_KEYWORD_LENGTH}"
            )
        cls._reject_control_chars(keyword, "Keyword")
        return keyword

    @classmethod
    def validate_github_repository(cls, full_name: str) -> str:
        """Validate an `owner/name` GitHub repository identifier."""
        if not full_name or not isinstance(full_name, str):
            raise ValueError("GitHub repository cannot be empty")
        if "://" in full_name:
            raise ValueError(
                "Provide the GitHub repository as owner/name "
                "(e.g. octo-org/migrator), not a URL"
            )
        if not cls.SAFE_GITHUB_REPO_PATTERN.match(full_name):
            raise ValueError(
                "GitHub repository must be in the format owner/name "
                "(e.g. octo-org/migrator)"
            )
        return full_name

    @classmethod
    def sanitize_for_logging(cls, message: str) -> str:
        """Sanitize message for safe logging by removing potential credentials."""
        if not message:
            return message

        sanitized = str(message)
        for pattern, replacement in cls.REDACTIONS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)

        return sanitized
