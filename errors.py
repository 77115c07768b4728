#!/usr/bin/env python3
"""Error kinds raised or reported by gh-mirror."""

from __future__ import annotations


class MirrorError(Exception):
    """Base class for gh-mirror errors."""


class NormalizationError(MirrorError, ValueError):
    """A repository identifier could not be turned into a RepositoryRef."""


class ConfigurationError(MirrorError, ValueError):
    """Configuration values are missing or invalid."""


class SyncTransportError(MirrorError):
    """A fatal git transport failure during one step of a sync run."""

    def __init__(self, step: str, detail: str) -> None:
        super().__init__(f"{step}: {detail}")
        self.step = step
        self.detail = detail


class PruneDeleteError(MirrorError):
    """Deleting one stale remote branch failed. Never fatal."""

    def __init__(self, branch: str, detail: str) -> None:
        super().__init__(f"failed to delete remote branch '{branch}': {detail}")
        self.branch = branch
        self.detail = detail
