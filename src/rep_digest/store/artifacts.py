"""
Artifact-creation interface and its implementations.

Artifacts are keyed by file name, so re-creating the same report during a
retry overwrites rather than duplicates it.
"""

import hashlib
import os
import tempfile
import threading
from pathlib import Path
from typing import Protocol

from rep_digest.core.models import ArtifactHandle


def _artifact_id(name: str, content: bytes) -> str:
    return f"{name}:{hashlib.sha256(content).hexdigest()[:16]}"


class ArtifactStore(Protocol):
    def create(self, name: str, mime_type: str, content: bytes) -> ArtifactHandle:
        ...

    def read(self, handle: ArtifactHandle) -> bytes:
        ...


class FileArtifactStore:
    """
    Writes artifacts into a directory.

    Files are written to a temporary name and renamed into place so a reader
    never sees a half-written report.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def create(self, name: str, mime_type: str, content: bytes) -> ArtifactHandle:
        if Path(name).name != name:
            raise ValueError(f"Artifact name must be a bare file name: {name!r}")

        self.directory.mkdir(parents=True, exist_ok=True)
        target = self.directory / name

        fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{name}.")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
            os.replace(tmp_path, target)
        except OSError:
            Path(tmp_path).unlink(missing_ok=True)
            raise

        return ArtifactHandle(
            artifact_id=_artifact_id(name, content),
            name=name,
            mime_type=mime_type,
            location=str(target),
            size_bytes=len(content),
        )

    def read(self, handle: ArtifactHandle) -> bytes:
        return Path(handle.location).read_bytes()


class MemoryArtifactStore:
    """Keeps artifacts in a dict; used for dry runs and tests."""

    def __init__(self):
        self.artifacts: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def create(self, name: str, mime_type: str, content: bytes) -> ArtifactHandle:
        with self._lock:
            self.artifacts[name] = content
        return ArtifactHandle(
            artifact_id=_artifact_id(name, content),
            name=name,
            mime_type=mime_type,
            location=f"memory://{name}",
            size_bytes=len(content),
        )

    def read(self, handle: ArtifactHandle) -> bytes:
        with self._lock:
            return self.artifacts[handle.name]
