"""Narrow storage interface for every file read/write the hooks perform.

The gate, the post-hook and the lock manager never touch the filesystem
directly; they go through a ``Storage`` so they can run against a real
workspace or an in-memory store in tests.
"""

import os
import posixpath
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Dict


class WorkspaceViolation(ValueError):
    """Raised when a path is absolute or escapes the workspace root."""
    pass


def normalize_rel_path(rel: str) -> str:
    """Normalize a workspace-relative path to forward-slash form.

    Raises:
        WorkspaceViolation: For absolute paths or paths escaping the root.
    """
    raw = str(rel).replace("\\", "/")
    if raw.startswith("/") or PurePosixPath(raw).is_absolute() or (len(raw) > 1 and raw[1] == ":"):
        raise WorkspaceViolation(f"Absolute paths are not allowed: {rel}")
    norm = posixpath.normpath(raw)
    if norm == ".." or norm.startswith("../"):
        raise WorkspaceViolation(f"Path escapes workspace: {rel}")
    return norm


class Storage(ABC):
    """Abstract workspace storage."""

    @abstractmethod
    def exists(self, rel: str) -> bool:
        pass

    @abstractmethod
    def read_bytes(self, rel: str) -> bytes:
        """Return file bytes. Raises FileNotFoundError if absent."""
        pass

    @abstractmethod
    def write_text(self, rel: str, content: str) -> None:
        pass

    @abstractmethod
    def delete(self, rel: str) -> None:
        """Remove a file. Raises FileNotFoundError if absent."""
        pass

    @abstractmethod
    def append_line(self, rel: str, line: str) -> None:
        """Append one complete line as an indivisible, durable unit."""
        pass

    @abstractmethod
    def read_from(self, rel: str, offset: int) -> bytes:
        """Return bytes from ``offset`` to the current end (b"" if absent)."""
        pass

    def read_text(self, rel: str) -> str:
        return self.read_bytes(rel).decode("utf-8", errors="replace")


# =============================================================================
# LOCAL WORKSPACE
# =============================================================================

@dataclass(frozen=True)
class LocalStorage(Storage):
    """Workspace-scoped filesystem storage (no traversal outside ``root``)."""
    root: Path

    @classmethod
    def from_path(cls, root) -> "LocalStorage":
        p = Path(root).expanduser()
        try:
            p = p.resolve()
        except OSError:
            p = p.absolute()
        return cls(root=p)

    def resolve_rel(self, rel: str) -> Path:
        """Resolve a user-provided relative path within the workspace."""
        candidate = (self.root / normalize_rel_path(rel)).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as e:
            raise WorkspaceViolation(f"Path escapes workspace: {rel}") from e
        return candidate

    def exists(self, rel: str) -> bool:
        return self.resolve_rel(rel).is_file()

    def read_bytes(self, rel: str) -> bytes:
        return self.resolve_rel(rel).read_bytes()

    def write_text(self, rel: str, content: str) -> None:
        p = self.resolve_rel(rel)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(content, encoding="utf-8")

    def delete(self, rel: str) -> None:
        self.resolve_rel(rel).unlink()

    def append_line(self, rel: str, line: str) -> None:
        p = self.resolve_rel(rel)
        p.parent.mkdir(parents=True, exist_ok=True)
        data = (line.rstrip("\n") + "\n").encode("utf-8")
        # O_APPEND + one write() keeps concurrent appenders from interleaving
        fd = os.open(str(p), os.O_RDWR | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            start = os.lseek(fd, 0, os.SEEK_END)
            if start and os.pread(fd, 1, start - 1) != b"\n":
                # a crashed writer left a torn line; start ours on a fresh one
                data = b"\n" + data
            try:
                written = os.write(fd, data)
                if written != len(data):
                    raise OSError(f"Short write to {rel}: {written}/{len(data)} bytes")
            except OSError:
                os.ftruncate(fd, start)
                raise
            os.fsync(fd)
        finally:
            os.close(fd)

    def read_from(self, rel: str, offset: int) -> bytes:
        p = self.resolve_rel(rel)
        if not p.exists():
            return b""
        with p.open("rb") as f:
            f.seek(offset)
            return f.read()


# =============================================================================
# IN-MEMORY
# =============================================================================

@dataclass
class MemoryStorage(Storage):
    """Dict-backed storage for tests and simulations."""
    files: Dict[str, bytes] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def exists(self, rel: str) -> bool:
        return normalize_rel_path(rel) in self.files

    def read_bytes(self, rel: str) -> bytes:
        key = normalize_rel_path(rel)
        if key not in self.files:
            raise FileNotFoundError(rel)
        return self.files[key]

    def write_text(self, rel: str, content: str) -> None:
        with self._lock:
            self.files[normalize_rel_path(rel)] = content.encode("utf-8")

    def delete(self, rel: str) -> None:
        key = normalize_rel_path(rel)
        with self._lock:
            if key not in self.files:
                raise FileNotFoundError(rel)
            del self.files[key]

    def append_line(self, rel: str, line: str) -> None:
        key = normalize_rel_path(rel)
        data = (line.rstrip("\n") + "\n").encode("utf-8")
        with self._lock:
            self.files[key] = self.files.get(key, b"") + data

    def read_from(self, rel: str, offset: int) -> bytes:
        return self.files.get(normalize_rel_path(rel), b"")[offset:]
