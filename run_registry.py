#!/usr/bin/env python3
"""Keep at most one mirror run per source ref in flight.

`RefRunRegistry` covers runs inside one process. `FileRunRegistry` keeps a
marker file per ref, so separate `gh-mirror run` processes on the same
checkout supersede each other too. Runs on different CI machines share no
files; there the workflow's concurrency group does the same job (see
`CI_CONCURRENCY_GROUP`).
"""

from __future__ import annotations

import itertools
import os
import threading
import uuid
from contextlib import contextmanager
from typing import Dict, Iterator, Optional
from urllib.parse import quote

from logging_utils import Logger

CI_CONCURRENCY_GROUP = "mirror-to-gitlab-${{ github.ref }}"
STATE_DIR_NAME = "gh-mirror-runs"


class RunHandle:
    """Cancel handle for one in-flight run."""

    def __init__(self, ref: str, run_id: str) -> None:
        self.ref = ref
        self.run_id = run_id
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()


class RefRunRegistry:
    """Newer runs for a ref supersede older ones; other refs are untouched."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Dict[str, RunHandle] = {}
        self._ids = itertools.count(1)

    def begin(self, ref: str) -> RunHandle:
        with self._lock:
            previous = self._active.get(ref)
            handle = RunHandle(ref, str(next(self._ids)))
            if previous is not None:
                previous.cancel()
                Logger.warn(
                    f"run #{previous.run_id} for {ref} superseded by run #{handle.run_id}"
                )
            self._active[ref] = handle
            return handle

    def finish(self, handle: RunHandle) -> None:
        with self._lock:
            if self._active.get(handle.ref) is handle:
                del self._active[handle.ref]

    @contextmanager
    def run(self, ref: str) -> Iterator[RunHandle]:
        handle = self.begin(ref)
        try:
            yield handle
        finally:
            self.finish(handle)


class FileRunHandle(RunHandle):
    """A run is cancelled once its ref's marker names a different run."""

    def __init__(self, ref: str, run_id: str, marker: str) -> None:
        super().__init__(ref, run_id)
        self.marker = marker

    @property
    def cancelled(self) -> bool:
        if super().cancelled:
            return True
        return _read_marker(self.marker) != self.run_id


def _read_marker(path: str) -> Optional[str]:
    try:
        with open(path, encoding="utf-8") as handle:
            return handle.read().strip() or None
    except FileNotFoundError:
        return None


class FileRunRegistry(RefRunRegistry):
    """Per-ref run markers in a directory shared by every process on a checkout.

    The newest run rewrites the marker; older runs notice between sync steps.
    The marker is replaced atomically, so the last writer always wins.
    """

    def __init__(self, directory: str) -> None:
        super().__init__()
        self.directory = directory

    @classmethod
    def for_checkout(cls, workdir: str) -> Optional[FileRunRegistry]:
        """Registry under `<workdir>/.git`, or None when it is not a checkout."""
        git_dir = os.path.join(workdir, ".git")
        if not os.path.isdir(git_dir):
            return None
        return cls(os.path.join(git_dir, STATE_DIR_NAME))

    def _marker(self, ref: str) -> str:
        return os.path.join(self.directory, quote(ref, safe="") + ".run")

    def begin(self, ref: str) -> RunHandle:
        marker = self._marker(ref)
        run_id = f"{os.getpid()}-{uuid.uuid4().hex}"
        with self._lock:
            os.makedirs(self.directory, exist_ok=True)
            previous = _read_marker(marker)
            tmp_path = f"{marker}.{run_id}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as handle:
                handle.write(run_id)
            os.replace(tmp_path, marker)
        if previous is not None:
            Logger.warn(f"run {previous} for {ref} superseded by run {run_id}")
        return FileRunHandle(ref, run_id, marker)

    def finish(self, handle: RunHandle) -> None:
        marker = self._marker(handle.ref)
        with self._lock:
            if _read_marker(marker) != handle.run_id:
                return
            if os.path.exists(marker):
                os.remove(marker)
