"""Error taxonomy for governed mutations.

Expected outcomes (missing intent, scope violation, stale file, ...) are
returned as ``Violation`` values so callers can tell BLOCKED from FAILED
without exception-based branching. Exceptions are reserved for
infrastructure faults (bad config, storage escape, ledger I/O).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    MISSING_INTENT = "MissingIntent"
    INTENT_NOT_FOUND = "IntentNotFound"
    INTENT_NOT_ACTIVE = "IntentNotActive"
    SCOPE_VIOLATION = "ScopeViolation"
    UNKNOWN_COMMAND = "UnknownCommand"
    AUTHORIZATION_DENIED = "AuthorizationDenied"
    STALE_FILE = "StaleFile"
    LEDGER_WRITE_FAILURE = "LedgerWriteFailure"
    SEMANTIC_CAPTURE_FAILURE = "SemanticCaptureFailure"
    ACTION_FAILED = "ActionFailed"


# Kinds that never block completion of a mutation
NON_FATAL_KINDS = {ErrorKind.SEMANTIC_CAPTURE_FAILURE}


@dataclass(frozen=True)
class Violation:
    """A governance outcome that stopped (or, if non-fatal, annotated) a request."""
    kind: ErrorKind
    message: str
    recovery: str
    details: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_fatal(self) -> bool:
        return self.kind not in NON_FATAL_KINDS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "recovery": self.recovery,
            "details": dict(self.details),
        }

    def to_tool_message(self) -> str:
        """Render the violation for the model so it can self-correct."""
        return (
            f'<governance_violation kind="{self.kind.value}">'
            f"<message>{self.message}</message>"
            f"<recovery>{self.recovery}</recovery>"
            f"</governance_violation>"
        )

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message} (recovery: {self.recovery})"


# =============================================================================
# VIOLATION CONSTRUCTORS
# =============================================================================

def missing_intent(tool_name: Optional[str] = None) -> Violation:
    action = f"'{tool_name}'" if tool_name else "a mutating action"
    return Violation(
        kind=ErrorKind.MISSING_INTENT,
        message=f"You attempted {action} without an active intent.",
        recovery="Call select_active_intent(intent_id) with a valid intent id first.",
        details={"tool_name": tool_name} if tool_name else {},
    )


def intent_not_found(intent_id: str) -> Violation:
    return Violation(
        kind=ErrorKind.INTENT_NOT_FOUND,
        message=f"Intent '{intent_id}' is not declared in the intent registry.",
        recovery="Pick an id listed in active_intents.yaml, or ask an operator to register the intent.",
        details={"intent_id": intent_id},
    )


def intent_not_active(intent_id: str, status: str) -> Violation:
    return Violation(
        kind=ErrorKind.INTENT_NOT_ACTIVE,
        message=f"Intent '{intent_id}' is {status}, not active; it cannot authorize mutations.",
        recovery=f"Select an active intent, or ask an operator to reopen '{intent_id}'.",
        details={"intent_id": intent_id, "status": status},
    )


def scope_violation(path: str, intent_id: str, owned_scope) -> Violation:
    return Violation(
        kind=ErrorKind.SCOPE_VIOLATION,
        message=f"Path '{path}' is outside the owned scope of intent '{intent_id}'.",
        recovery=f"Request scope expansion for path '{path}' on intent '{intent_id}', or select an intent that owns it.",
        details={"path": path, "intent_id": intent_id, "owned_scope": list(owned_scope)},
    )


def protected_path(path: str, intent_id: str) -> Violation:
    return Violation(
        kind=ErrorKind.SCOPE_VIOLATION,
        message=f"Path '{path}' is governance state and cannot be mutated by any intent.",
        recovery="Leave the intent registry and trace ledger to operators; target a workspace file instead.",
        details={"path": path, "intent_id": intent_id, "protected": True},
    )


def unknown_command(name: str) -> Violation:
    return Violation(
        kind=ErrorKind.UNKNOWN_COMMAND,
        message=f"Command '{name}' is not in the governance command table.",
        recovery="Use a listed tool, or have a maintainer classify the command in COMMAND_CLASSES.",
        details={"command": name},
    )


def authorization_denied(name: str, reason: str) -> Violation:
    return Violation(
        kind=ErrorKind.AUTHORIZATION_DENIED,
        message=f"Destructive command '{name}' was not authorized: {reason}.",
        recovery="Explain why the action is needed and ask the operator to approve it, or choose a non-destructive alternative.",
        details={"command": name, "reason": reason},
    )


def stale_file(path: str, expected_hash: Optional[str], actual_hash: Optional[str]) -> Violation:
    return Violation(
        kind=ErrorKind.STALE_FILE,
        message=f"File '{path}' changed since it was read.",
        recovery=f"Re-read '{path}' and retry the change against its current content.",
        details={"path": path, "expected_hash": expected_hash, "actual_hash": actual_hash},
    )


def ledger_write_failure(error: str) -> Violation:
    return Violation(
        kind=ErrorKind.LEDGER_WRITE_FAILURE,
        message=f"The mutation was applied but could not be recorded in the trace ledger: {error}",
        recovery="Stop mutating; an operator must restore ledger writability and record the change manually.",
        details={"error": error},
    )


def semantic_capture_failure(path: str, error: str) -> Violation:
    return Violation(
        kind=ErrorKind.SEMANTIC_CAPTURE_FAILURE,
        message=f"Semantic capture failed for '{path}': {error}",
        recovery="None required; the trace entry was recorded without semantic links.",
        details={"path": path, "error": error},
    )


def action_failed(tool_name: str, error: str) -> Violation:
    return Violation(
        kind=ErrorKind.ACTION_FAILED,
        message=f"Action '{tool_name}' failed: {error}",
        recovery="Inspect the error and retry; nothing was recorded because nothing was mutated.",
        details={"tool_name": tool_name, "error": error},
    )


# =============================================================================
# INFRASTRUCTURE EXCEPTIONS
# =============================================================================

class LedgerWriteError(Exception):
    """Raised when a trace entry cannot be appended after all retries."""
    pass


class ApprovalError(Exception):
    """Raised by an approval channel that cannot reach its decision source."""
    pass
