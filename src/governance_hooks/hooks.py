"""Hook engine: the single governed entry point for mutating tools.

Per invocation:

    REQUESTED -> INTENT_CHECK -> SCOPE_CHECK -> [AUTHORIZATION] -> EXECUTING -> LOGGING -> DONE
                      |               |               |               |            |
                      +---------------+-------> BLOCKED               +--> FAILED <+

BLOCKED: a gate step failed; the action was never invoked; no trace entry.
FAILED:  the action raised (nothing recorded), or the ledger append failed
         after the action mutated the workspace (LedgerWriteFailure).

Read-only tools skip intent, scope and logging: REQUESTED -> EXECUTING -> DONE.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from governance_hooks.errors import Violation, action_failed
from governance_hooks.gate import MUTATION_CLASS_BY_TOOL, CommandClass, Gate, ResolvedIntent
from governance_hooks.hashing import Content
from governance_hooks.ledger import MutationClass, TraceEntry
from governance_hooks.locks import LockManager, LockSnapshot
from governance_hooks.post_hook import PostHook

logger = logging.getLogger(__name__)


class HookState(str, Enum):
    REQUESTED = "REQUESTED"
    INTENT_CHECK = "INTENT_CHECK"
    SCOPE_CHECK = "SCOPE_CHECK"
    AUTHORIZATION = "AUTHORIZATION"
    EXECUTING = "EXECUTING"
    LOGGING = "LOGGING"
    DONE = "DONE"
    BLOCKED = "BLOCKED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class MutationRequest:
    """Metadata describing what a tool call is about to touch."""
    tool_name: str
    paths: Tuple[str, ...] = ()
    snapshots: Tuple[LockSnapshot, ...] = ()
    command: Optional[str] = None
    model_identifier: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class MutationOutcome:
    """Returned by a wrapped action: final content per mutated path.

    For deletions the content is what was removed; for commands it is the
    command line (plus whatever the runner chooses to fingerprint).
    """
    contents: List[Tuple[str, Content]] = field(default_factory=list)
    value: Any = None


@dataclass
class HookResult:
    state: HookState
    value: Any = None
    violation: Optional[Violation] = None
    warnings: List[Violation] = field(default_factory=list)
    entry: Optional[TraceEntry] = None
    transitions: List[HookState] = field(default_factory=list)
    intent: Optional[ResolvedIntent] = None

    @property
    def ok(self) -> bool:
        return self.state is HookState.DONE

    @property
    def blocked(self) -> bool:
        return self.state is HookState.BLOCKED

    @property
    def failed(self) -> bool:
        return self.state is HookState.FAILED

    @property
    def degraded(self) -> bool:
        return bool(self.intent and self.intent.degraded)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "violation": self.violation.to_dict() if self.violation else None,
            "warnings": [w.to_dict() for w in self.warnings],
            "entry_id": self.entry.id if self.entry else None,
            "intent_id": self.intent.id if self.intent else None,
            "degraded": self.degraded,
            "transitions": [s.value for s in self.transitions],
        }


Action = Callable[[], MutationOutcome]


class HookEngine:
    """Sequences Gate -> action -> PostHook for every mutating tool call."""

    def __init__(
        self,
        gate: Gate,
        post_hook: PostHook,
        locks: Optional[LockManager] = None,
        on_blocked: Optional[Callable[[HookResult], None]] = None,
    ):
        self.gate = gate
        self.post_hook = post_hook
        self.locks = locks or LockManager(gate)
        self.on_blocked = on_blocked

    def _block(self, result: HookResult, violation: Violation, meta: MutationRequest) -> HookResult:
        result.violation = violation
        result.state = HookState.BLOCKED
        result.transitions.append(HookState.BLOCKED)
        logger.info("BLOCKED %s: %s", meta.tool_name, violation)
        if self.on_blocked is not None:
            self.on_blocked(result)
        return result

    def _fail(self, result: HookResult, violation: Violation) -> HookResult:
        result.violation = violation
        result.state = HookState.FAILED
        result.transitions.append(HookState.FAILED)
        return result

    def _enter(self, result: HookResult, state: HookState) -> None:
        result.state = state
        result.transitions.append(state)

    # --- steps (also driven node-by-node by hook_graph) ---

    @staticmethod
    def target_paths(meta: MutationRequest) -> List[str]:
        """Paths the gate must check; commands default to the workspace root."""
        paths = list(meta.paths)
        if not paths:
            if MUTATION_CLASS_BY_TOOL.get(meta.tool_name) is not MutationClass.COMMAND:
                raise ValueError(f"{meta.tool_name} request must name at least one target path")
            paths = ["."]
        return paths

    def check_intent(self, result: HookResult, intent_id: Optional[str], meta: MutationRequest) -> bool:
        self._enter(result, HookState.INTENT_CHECK)
        resolved, violation = self.gate.resolve_intent(intent_id, meta.tool_name)
        if violation is not None:
            self._block(result, violation, meta)
            return False
        result.intent = resolved
        return True

    def check_scope(self, result: HookResult, meta: MutationRequest) -> bool:
        self._enter(result, HookState.SCOPE_CHECK)
        for path in self.target_paths(meta):
            violation = self.gate.enforce_scope(path, result.intent.intent)
            if violation is not None:
                self._block(result, violation, meta)
                return False
        return True

    def check_authorization(
        self,
        result: HookResult,
        meta: MutationRequest,
        cancel: Optional[threading.Event] = None,
    ) -> bool:
        """Suspend on the approval channel; a no-op for Safe tools."""
        command_class, _ = self.gate.classify_command(meta.tool_name)
        if command_class is not CommandClass.DESTRUCTIVE:
            return True
        self._enter(result, HookState.AUTHORIZATION)
        details = {**meta.details, "paths": self.target_paths(meta)}
        if meta.command:
            details["command"] = meta.command
        violation = self.gate.authorize(meta.tool_name, result.intent.id, details, cancel=cancel)
        if violation is not None:
            self._block(result, violation, meta)
            return False
        return True

    def commit(self, result: HookResult, action: Action, meta: MutationRequest) -> HookResult:
        """Revalidate snapshots, run the action, record it; all under the commit guard."""
        guarded = self.target_paths(meta) + [s.path for s in meta.snapshots]
        with self.locks.guard(guarded):
            for snapshot in meta.snapshots:
                violation = self.locks.commit(snapshot.path, snapshot)
                if violation is not None:
                    return self._block(result, violation, meta)

            # --- EXECUTING ---
            self._enter(result, HookState.EXECUTING)
            try:
                outcome = action()
            except Exception as e:
                logger.warning("Action %s failed: %s", meta.tool_name, e)
                return self._fail(result, action_failed(meta.tool_name, str(e)))
            if not isinstance(outcome, MutationOutcome):
                raise TypeError(f"{meta.tool_name} action must return MutationOutcome, got {type(outcome).__name__}")
            result.value = outcome.value

            if not outcome.contents:
                logger.debug("%s reported no mutated paths; nothing to record", meta.tool_name)
                self._enter(result, HookState.DONE)
                return result

            # --- LOGGING ---
            self._enter(result, HookState.LOGGING)
            logged = self.post_hook.record(
                intent_id=result.intent.id,
                mutation_class=MUTATION_CLASS_BY_TOOL[meta.tool_name],
                contents=outcome.contents,
                model_identifier=meta.model_identifier,
            )
            result.warnings.extend(logged.warnings)
            if logged.violation is not None:
                return self._fail(result, logged.violation)
            result.entry = logged.entry

        self._enter(result, HookState.DONE)
        return result

    def run_read_only(self, result: HookResult, action: Action) -> HookResult:
        self._enter(result, HookState.EXECUTING)
        try:
            outcome = action()
        except Exception as e:
            return self._fail(result, action_failed("read-only action", str(e)))
        result.value = outcome.value if isinstance(outcome, MutationOutcome) else outcome
        self._enter(result, HookState.DONE)
        return result

    def begin(self, meta: MutationRequest) -> HookResult:
        """Create the REQUESTED result; blocks immediately on an unlisted tool."""
        result = HookResult(state=HookState.REQUESTED, transitions=[HookState.REQUESTED])
        _, violation = self.gate.classify_command(meta.tool_name)
        if violation is not None:
            self._block(result, violation, meta)
        return result

    # --- entry point ---

    def execute_with_hooks(
        self,
        action: Action,
        intent_id: Optional[str],
        meta: MutationRequest,
        cancel: Optional[threading.Event] = None,
    ) -> HookResult:
        """
        Run ``action`` under governance.

        Args:
            action: Zero-arg callable performing the mutation and returning a
                    MutationOutcome. Only invoked once every gate step passed.
            intent_id: The caller's active intent id (None if unselected).
            meta: What the action will touch.
            cancel: Optional token that aborts a pending approval.

        Returns:
            HookResult - never raises for governance outcomes.
        """
        result = self.begin(meta)
        if result.blocked:
            return result
        if meta.tool_name not in MUTATION_CLASS_BY_TOOL:
            return self.run_read_only(result, action)

        if not self.check_intent(result, intent_id, meta):
            return result
        if not self.check_scope(result, meta):
            return result
        if not self.check_authorization(result, meta, cancel=cancel):
            return result
        return self.commit(result, action, meta)
