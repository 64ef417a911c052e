"""Optimistic concurrency for workspace files.

Readers take a LockSnapshot (the content hash at read time) without
blocking anyone. At commit time the snapshot is revalidated; if another
writer got there first the commit fails with StaleFile and the caller must
re-acquire. ``guard()`` is a short commit-time critical section around
revalidate + write, never held while an agent is editing.
"""

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, Iterator, Optional

from governance_hooks.errors import Violation
from governance_hooks.gate import Gate
from governance_hooks.hashing import hash_stored_file
from governance_hooks.storage import normalize_rel_path


@dataclass(frozen=True)
class LockSnapshot:
    path: str
    expected_hash: Optional[str]  # None: the file did not exist when read
    captured_at: str


class LockManager:
    def __init__(self, gate: Gate):
        self.gate = gate
        self._guards: Dict[str, threading.Lock] = {}
        self._guards_lock = threading.Lock()

    def acquire(self, path: str) -> LockSnapshot:
        rel = normalize_rel_path(path)
        return LockSnapshot(
            path=rel,
            expected_hash=hash_stored_file(self.gate.storage, rel),
            captured_at=datetime.now(timezone.utc).isoformat(),
        )

    def commit(self, path: str, snapshot: LockSnapshot) -> Optional[Violation]:
        """Revalidate ``snapshot`` against the file's current content."""
        return self.gate.check_staleness(normalize_rel_path(path), snapshot.expected_hash)

    def _guard_for(self, rel: str) -> threading.Lock:
        with self._guards_lock:
            return self._guards.setdefault(rel, threading.Lock())

    @contextmanager
    def guard(self, paths: Iterable[str]) -> Iterator[None]:
        """Serialize commits touching the same paths (sorted order, no deadlock)."""
        locks = [self._guard_for(rel) for rel in sorted({normalize_rel_path(p) for p in paths})]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()
