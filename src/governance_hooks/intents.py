"""Intent registry: load, validate and look up authorized intents.

Source format (YAML), either a bare list or the ``active_intents`` layout:

    active_intents:
      - id: INT-001
        name: Core refactor
        status: active
        owned_scope:
          - "src/core/**"
        constraints:
          - "No public API changes"
        acceptance_criteria:
          - "All unit tests pass"

Each entry is validated on its own against INTENT_SCHEMA (JSON Schema
Draft-07). A malformed entry is skipped and reported; it never invalidates
the rest of the file. An unreadable or unparseable source yields an empty
registry rather than an error.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import jsonschema
import yaml

from governance_hooks.storage import Storage

logger = logging.getLogger(__name__)


class IntentStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Intent:
    """A scoped, authorized unit of work."""
    id: str
    name: str
    status: IntentStatus
    owned_scope: Tuple[str, ...]
    constraints: Tuple[str, ...] = ()
    acceptance_criteria: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "owned_scope": list(self.owned_scope),
            "constraints": list(self.constraints),
            "acceptance_criteria": list(self.acceptance_criteria),
        }


@dataclass(frozen=True)
class IntentParseError:
    """One rejected entry of the intent source."""
    index: Optional[int]
    intent_id: Optional[str]
    message: str

    def __str__(self) -> str:
        where = f"entry {self.index}" if self.index is not None else "source"
        if self.intent_id:
            where += f" ({self.intent_id})"
        return f"{where}: {self.message}"


@dataclass
class IntentLoadResult:
    intents: List[Intent] = field(default_factory=list)
    errors: List[IntentParseError] = field(default_factory=list)


_STRING_LIST = {"type": "array", "items": {"type": "string", "minLength": 1}}

INTENT_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["id", "name", "status", "owned_scope"],
    "properties": {
        "id": {"type": "string", "pattern": r"^\S+$"},
        "name": {"type": "string", "minLength": 1},
        "status": {"type": "string", "enum": [s.value for s in IntentStatus]},
        "owned_scope": _STRING_LIST,
        "constraints": _STRING_LIST,
        "acceptance_criteria": _STRING_LIST,
    },
}

_VALIDATOR = jsonschema.Draft7Validator(INTENT_SCHEMA)


def _schema_errors(entry: Any) -> List[str]:
    """Return ALL schema errors for one entry (not just the first)."""
    errors = []
    for error in sorted(_VALIDATOR.iter_errors(entry), key=lambda e: [str(p) for p in e.absolute_path]):
        path = ".".join(str(p) for p in error.absolute_path) if error.absolute_path else "(root)"
        errors.append(f"{error.message} at {path}")
    return errors


def _dedupe(items: List[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))


def _entry_to_intent(entry: Dict[str, Any]) -> Intent:
    return Intent(
        id=entry["id"],
        name=entry["name"],
        status=IntentStatus(entry["status"]),
        owned_scope=_dedupe(entry["owned_scope"]),
        constraints=tuple(entry.get("constraints") or ()),
        acceptance_criteria=tuple(entry.get("acceptance_criteria") or ()),
    )


def load_intents(source: str) -> IntentLoadResult:
    """
    Parse intent YAML into typed records.

    Args:
        source: YAML text of the intent source.

    Returns:
        IntentLoadResult with the valid intents (in source order) and one
        IntentParseError per rejected entry.
    """
    result = IntentLoadResult()
    if not source or not source.strip():
        return result

    try:
        data = yaml.safe_load(source)
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        if mark is not None:
            detail = f"YAML parse error at line {mark.line + 1}, column {mark.column + 1}: {getattr(e, 'problem', None) or 'syntax error'}"
        else:
            detail = f"YAML parse error: {e}"
        result.errors.append(IntentParseError(index=None, intent_id=None, message=detail))
        return result

    if isinstance(data, dict):
        for key in ("active_intents", "intents"):
            if key in data:
                data = data[key]
                break
    if data is None:
        return result
    if not isinstance(data, list):
        result.errors.append(IntentParseError(
            index=None, intent_id=None, message=f"Expected a list of intents, got {type(data).__name__}",
        ))
        return result

    seen = set()
    for index, entry in enumerate(data):
        intent_id = entry.get("id") if isinstance(entry, dict) else None
        if isinstance(entry, dict) and isinstance(entry.get("status"), str):
            entry = {**entry, "status": entry["status"].strip().lower()}

        problems = _schema_errors(entry)
        if not problems and intent_id in seen:
            problems = [f"duplicate intent id '{intent_id}'"]
        if problems:
            for problem in problems:
                result.errors.append(IntentParseError(
                    index=index, intent_id=intent_id if isinstance(intent_id, str) else None, message=problem,
                ))
            continue

        seen.add(intent_id)
        result.intents.append(_entry_to_intent(entry))

    for error in result.errors:
        logger.warning("Skipping malformed intent %s", error)
    return result


class IntentRegistry:
    """Cached view over the intent source.

    The source is parsed once and kept as an immutable snapshot until
    ``invalidate()`` is called; gate checks never re-parse on their own.
    """

    def __init__(self, storage: Storage, path: str):
        self.storage = storage
        self.path = path
        self._snapshot: Optional[IntentLoadResult] = None
        self._lock = threading.Lock()

    def load(self) -> IntentLoadResult:
        """Re-read the source unconditionally and replace the cached snapshot."""
        try:
            text = self.storage.read_text(self.path)
        except FileNotFoundError:
            logger.warning("Intent source %s not found; registry is empty", self.path)
            text = ""
        except OSError as e:
            logger.warning("Intent source %s unreadable (%s); registry is empty", self.path, e)
            text = ""

        snapshot = load_intents(text)
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def _current(self) -> IntentLoadResult:
        with self._lock:
            snapshot = self._snapshot
        return snapshot if snapshot is not None else self.load()

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None

    def intents(self) -> List[Intent]:
        return list(self._current().intents)

    @property
    def errors(self) -> List[IntentParseError]:
        return list(self._current().errors)

    def is_empty(self) -> bool:
        return not self._current().intents

    def lookup(self, intent_id: str) -> Optional[Intent]:
        for intent in self._current().intents:
            if intent.id == intent_id:
                return intent
        return None
