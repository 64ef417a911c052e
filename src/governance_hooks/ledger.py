"""Append-only trace ledger (JSON Lines).

One self-contained JSON object per line:

    {"id": ..., "timestamp": ..., "intent_id": ..., "vcs_revision": ...,
     "files": [{"relative_path": ..., "content_hash": ..., "mutation_class": ...,
                "contributor": {"entity_type": ..., "model_identifier": ...},
                "semantic_links": [...]}]}

Entries are never rewritten or deleted. The append is the single
serialization point of the system: one complete line per write, appended
under a lock, fsynced, retried a bounded number of times.
"""

import json
import logging
import re
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

from governance_hooks.constants import DEFAULT_LEDGER_RETRIES, LEDGER_RETRY_BACKOFF_S
from governance_hooks.errors import LedgerWriteError
from governance_hooks.storage import Storage

logger = logging.getLogger(__name__)

HASH_RE = re.compile(r"^[0-9a-f]{64}$")


class MutationClass(str, Enum):
    WRITE = "Write"
    DELETE = "Delete"
    COMMAND = "Command"


@dataclass(frozen=True)
class Contributor:
    entity_type: str
    model_identifier: str

    def to_dict(self) -> Dict[str, str]:
        return {"entity_type": self.entity_type, "model_identifier": self.model_identifier}


@dataclass(frozen=True)
class FileRecord:
    relative_path: str
    content_hash: str
    semantic_links: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TraceEntry:
    """One immutable record linking a mutation to its intent and content."""
    id: str
    timestamp: str
    intent_id: str
    mutation_class: MutationClass
    files: Tuple[FileRecord, ...]
    vcs_revision: str
    contributor: Contributor

    @classmethod
    def create(
        cls,
        intent_id: str,
        mutation_class: MutationClass,
        files: List[FileRecord],
        vcs_revision: str,
        contributor: Contributor,
    ) -> "TraceEntry":
        if not files:
            raise ValueError("A trace entry needs at least one file record")
        return cls(
            id=str(uuid.uuid4()),
            timestamp=datetime.now(timezone.utc).isoformat(),
            intent_id=intent_id,
            mutation_class=mutation_class,
            files=tuple(files),
            vcs_revision=vcs_revision,
            contributor=contributor,
        )

    def to_dict(self) -> Dict[str, Any]:
        files = []
        for record in self.files:
            item: Dict[str, Any] = {
                "relative_path": record.relative_path,
                "content_hash": record.content_hash,
                "mutation_class": self.mutation_class.value,
                "contributor": self.contributor.to_dict(),
            }
            if record.semantic_links:
                item["semantic_links"] = list(record.semantic_links)
            files.append(item)
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "intent_id": self.intent_id,
            "vcs_revision": self.vcs_revision,
            "files": files,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TraceEntry":
        """Parse a ledger line. Raises KeyError/ValueError on malformed input."""
        raw_files = data["files"]
        if not isinstance(raw_files, list) or not raw_files:
            raise ValueError("entry has no file records")
        first = raw_files[0]
        contributor = first["contributor"]
        return cls(
            id=data["id"],
            timestamp=data["timestamp"],
            intent_id=data["intent_id"],
            mutation_class=MutationClass(first["mutation_class"]),
            files=tuple(
                FileRecord(
                    relative_path=f["relative_path"],
                    content_hash=f["content_hash"],
                    semantic_links=tuple(f.get("semantic_links") or ()),
                )
                for f in raw_files
            ),
            vcs_revision=data["vcs_revision"],
            contributor=Contributor(
                entity_type=contributor["entity_type"],
                model_identifier=contributor["model_identifier"],
            ),
        )


def _problems_in(data: Any) -> List[str]:
    """Structural checks on one decoded ledger line."""
    if not isinstance(data, dict):
        return ["line is not a JSON object"]
    problems = [f"missing field '{k}'" for k in ("id", "timestamp", "intent_id", "vcs_revision", "files") if k not in data]
    files = data.get("files")
    if not isinstance(files, list) or not files:
        problems.append("no file records")
        return problems
    for i, record in enumerate(files):
        if not isinstance(record, dict):
            problems.append(f"file record {i} is not an object")
            continue
        if not HASH_RE.match(str(record.get("content_hash", ""))):
            problems.append(f"file record {i} has an invalid content_hash")
        if record.get("mutation_class") not in {m.value for m in MutationClass}:
            problems.append(f"file record {i} has an invalid mutation_class")
    return problems


class Ledger:
    """Append-only ledger over a Storage path."""

    def __init__(
        self,
        storage: Storage,
        path: str,
        retries: int = DEFAULT_LEDGER_RETRIES,
        backoff_s: float = LEDGER_RETRY_BACKOFF_S,
    ):
        self.storage = storage
        self.path = path
        self.retries = max(1, retries)
        self.backoff_s = backoff_s
        self._lock = threading.Lock()

    # --- writing ---

    def append(self, entry: TraceEntry) -> None:
        """
        Append exactly one entry.

        Raises:
            LedgerWriteError: If every attempt failed. The caller must treat
                              the mutation as unrecorded.
        """
        line = entry.to_json()
        last_error: Optional[Exception] = None
        with self._lock:
            for attempt in range(1, self.retries + 1):
                try:
                    self.storage.append_line(self.path, line)
                    return
                except OSError as e:
                    last_error = e
                    logger.warning(
                        "Ledger append failed (attempt %d/%d) for entry %s: %s",
                        attempt, self.retries, entry.id, e,
                    )
                    if attempt < self.retries:
                        time.sleep(self.backoff_s * attempt)
        raise LedgerWriteError(f"Could not append entry {entry.id} to {self.path}: {last_error}")

    # --- reading ---

    def read_since(self, offset: int) -> Tuple[List[TraceEntry], int]:
        """
        Parse complete lines written after byte ``offset``.

        A trailing line without a newline is still being written; it is left
        for the next call.

        Returns:
            (entries, new_offset)
        """
        data = self.storage.read_from(self.path, offset)
        end = data.rfind(b"\n")
        if end == -1:
            return [], offset

        entries = []
        for raw in data[: end + 1].splitlines():
            if not raw.strip():
                continue
            try:
                entries.append(TraceEntry.from_dict(json.loads(raw.decode("utf-8"))))
            except (ValueError, KeyError, TypeError) as e:
                logger.warning("Skipping unreadable ledger line in %s: %s", self.path, e)
        return entries, offset + end + 1

    def entries(self) -> List[TraceEntry]:
        return self.read_since(0)[0]

    def count(self) -> int:
        return len(self.entries())

    def follow(
        self,
        poll_interval_s: float = 0.5,
        stop: Optional[threading.Event] = None,
        from_start: bool = True,
    ) -> Iterator[TraceEntry]:
        """Yield entries as they are appended, until ``stop`` is set."""
        offset = 0
        if not from_start:
            offset = len(self.storage.read_from(self.path, 0))
        stop = stop or threading.Event()
        while True:
            entries, offset = self.read_since(offset)
            for entry in entries:
                yield entry
            if stop.wait(poll_interval_s):
                return

    def verify(self) -> List[str]:
        """Return integrity problems (empty list when the ledger is sound)."""
        problems = []
        seen_ids = set()
        data = self.storage.read_from(self.path, 0)
        lines = data.split(b"\n")
        if lines and lines[-1] != b"":
            problems.append(f"line {len(lines)}: incomplete trailing line")
        for number, raw in enumerate(lines[:-1], start=1):
            if not raw.strip():
                continue
            try:
                decoded = json.loads(raw.decode("utf-8"))
            except ValueError as e:
                problems.append(f"line {number}: invalid JSON ({e})")
                continue
            for problem in _problems_in(decoded):
                problems.append(f"line {number}: {problem}")
            entry_id = decoded.get("id") if isinstance(decoded, dict) else None
            if not isinstance(entry_id, str):
                continue
            if entry_id in seen_ids:
                problems.append(f"line {number}: duplicate entry id {entry_id}")
            seen_ids.add(entry_id)
        return problems
