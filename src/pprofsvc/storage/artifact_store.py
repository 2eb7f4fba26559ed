"""Per-kind artifact files under a fixed output directory."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, TextIO

from pprofsvc.core.errors import StorageError
from pprofsvc.core.kinds import ProfileKind

logger = logging.getLogger(__name__)


class ArtifactStore:
    """Creates, truncates and closes the one output file per profiler kind.

    The base directory is created on construction.  Failing to create it
    raises :class:`StorageError`; callers treat that as fatal.
    """

    def __init__(self, root: Path, extension: str = "pprof"):
        self.root = Path(root)
        self.extension = extension.lstrip(".")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"cannot create output directory {self.root}: {exc}") from exc
        if not self.root.is_dir():
            raise StorageError(f"output path {self.root} is not a directory")

    def path_for(self, kind: ProfileKind) -> Path:
        return self.root / kind.filename(self.extension)

    def provision(self, kind: ProfileKind) -> TextIO:
        """Remove any previous artifact for ``kind`` and open a fresh one."""
        path = self.path_for(kind)
        try:
            path.unlink(missing_ok=True)
            handle = path.open("w", encoding="utf-8")
        except OSError as exc:
            raise StorageError(exc.strerror or str(exc), kind=kind.value) from exc
        logger.debug("Provisioned artifact: kind=%s path=%s", kind.value, path)
        return handle

    def release(self, handle: Optional[TextIO]) -> None:
        """Close ``handle``; absent or already-closed handles are ignored."""
        if handle is None or handle.closed:
            return
        name = getattr(handle, "name", "?")
        try:
            handle.close()
        except OSError as exc:
            raise StorageError(f"closing {name} failed: {exc}") from exc
        logger.debug("Released artifact: path=%s", name)

    def describe(self) -> dict[str, dict]:
        """Current on-disk state of every artifact, keyed by kind."""
        summary: dict[str, dict] = {}
        for kind in ProfileKind:
            path = self.path_for(kind)
            entry: dict = {"path": str(path), "exists": path.is_file()}
            if entry["exists"]:
                stat = path.stat()
                entry["bytes"] = stat.st_size
                entry["modified"] = stat.st_mtime
            summary[kind.value] = entry
        return summary
