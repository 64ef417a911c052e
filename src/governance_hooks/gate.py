"""Gate (pre-hook): everything that must hold before a mutation may run.

Every check returns a Violation (or None) instead of raising, so the
orchestrator can report BLOCKED without exception-based branching.

Command table (ruleset v1):

    Safe         read-only tools, and scoped content writes (write_to_file,
                 apply_diff, insert_content, search_and_replace)
    Destructive  delete_file, execute_command  -> require approval

The table is closed: a tool not listed is rejected with UnknownCommand and
must be classified here deliberately.
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from governance_hooks.approval import ApprovalChannel, ApprovalDecision, ApprovalRequest, await_decision
from governance_hooks.constants import DEFAULT_APPROVAL_TIMEOUT_S, PERMISSIVE_SCOPE, RULESET_VERSION
from governance_hooks.errors import (
    Violation,
    authorization_denied,
    intent_not_found,
    intent_not_active,
    missing_intent,
    protected_path,
    scope_violation,
    stale_file,
    unknown_command,
)
from governance_hooks.hashing import hash_stored_file
from governance_hooks.intents import Intent, IntentRegistry, IntentStatus
from governance_hooks.ledger import MutationClass
from governance_hooks.scope import matches
from governance_hooks.storage import Storage, WorkspaceViolation, normalize_rel_path

logger = logging.getLogger(__name__)


class CommandClass(str, Enum):
    SAFE = "Safe"
    DESTRUCTIVE = "Destructive"


# === COMMAND TABLE (closed; extend deliberately, bump RULESET_VERSION) ===

COMMAND_CLASSES: Dict[str, CommandClass] = {
    # read-only
    "read_file": CommandClass.SAFE,
    "list_files": CommandClass.SAFE,
    "search_files": CommandClass.SAFE,
    "list_code_definition_names": CommandClass.SAFE,
    "ask_followup_question": CommandClass.SAFE,
    "attempt_completion": CommandClass.SAFE,
    "select_active_intent": CommandClass.SAFE,
    # scoped, content-addressed writes
    "write_to_file": CommandClass.SAFE,
    "apply_diff": CommandClass.SAFE,
    "insert_content": CommandClass.SAFE,
    "search_and_replace": CommandClass.SAFE,
    # destructive
    "delete_file": CommandClass.DESTRUCTIVE,
    "execute_command": CommandClass.DESTRUCTIVE,
}

# Tools that mutate the workspace and therefore need an intent + a trace entry
MUTATION_CLASS_BY_TOOL: Dict[str, MutationClass] = {
    "write_to_file": MutationClass.WRITE,
    "apply_diff": MutationClass.WRITE,
    "insert_content": MutationClass.WRITE,
    "search_and_replace": MutationClass.WRITE,
    "delete_file": MutationClass.DELETE,
    "execute_command": MutationClass.COMMAND,
}


def is_mutating(tool_name: str) -> bool:
    return tool_name in MUTATION_CLASS_BY_TOOL


@dataclass(frozen=True)
class ResolvedIntent:
    """Gate resolution result; ``degraded`` marks the permissive stub."""
    intent: Intent
    degraded: bool = False

    @property
    def id(self) -> str:
        return self.intent.id


def permissive_stub(intent_id: str) -> Intent:
    return Intent(
        id=intent_id,
        name=intent_id,
        status=IntentStatus.ACTIVE,
        owned_scope=PERMISSIVE_SCOPE,
    )


class Gate:
    """Canonical pre-hook rule set.

    The intent source and any ``protected_paths`` (the trace ledger) are
    never mutable through the gate, whatever an intent's scope says.
    """

    ruleset_version = RULESET_VERSION

    def __init__(
        self,
        registry: IntentRegistry,
        storage: Storage,
        approval: Optional[ApprovalChannel] = None,
        strict_intents: bool = False,
        approval_timeout_s: float = DEFAULT_APPROVAL_TIMEOUT_S,
        protected_paths: Iterable[str] = (),
    ):
        self.registry = registry
        self.storage = storage
        self.approval = approval
        self.strict_intents = strict_intents
        self.approval_timeout_s = approval_timeout_s
        self.protected_paths: FrozenSet[str] = frozenset(
            normalize_rel_path(p) for p in (registry.path, *protected_paths)
        )

    def resolve_intent(
        self, active_intent_id: Optional[str], tool_name: Optional[str] = None,
    ) -> Tuple[Optional[ResolvedIntent], Optional[Violation]]:
        """
        Resolve the active intent id against the registry.

        An id that is set but unknown resolves to a permissive stub
        (degraded=True) unless strict_intents is on, in which case it is
        rejected with IntentNotFound. A declared intent that is draft or
        completed is rejected with IntentNotActive.
        """
        if active_intent_id is None or not str(active_intent_id).strip():
            return None, missing_intent(tool_name)

        intent_id = str(active_intent_id).strip()
        intent = self.registry.lookup(intent_id)
        if intent is not None:
            if intent.status is not IntentStatus.ACTIVE:
                return None, intent_not_active(intent.id, intent.status.value)
            return ResolvedIntent(intent=intent), None

        if self.strict_intents:
            return None, intent_not_found(intent_id)

        logger.warning(
            "Intent '%s' not found in %s; continuing with permissive scope %s",
            intent_id, self.registry.path, list(PERMISSIVE_SCOPE),
        )
        return ResolvedIntent(intent=permissive_stub(intent_id), degraded=True), None

    def enforce_scope(self, path: str, intent: Intent) -> Optional[Violation]:
        try:
            rel = normalize_rel_path(path)
        except WorkspaceViolation as e:
            return replace(scope_violation(str(path), intent.id, intent.owned_scope), message=str(e))

        if rel in self.protected_paths:
            return protected_path(rel, intent.id)

        if matches(rel, intent.owned_scope):
            return None
        return scope_violation(rel, intent.id, intent.owned_scope)

    def classify_command(self, name: str) -> Tuple[Optional[CommandClass], Optional[Violation]]:
        command_class = COMMAND_CLASSES.get(name)
        if command_class is None:
            return None, unknown_command(name)
        return command_class, None

    def authorize(
        self,
        name: str,
        intent_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Optional[Violation]:
        """Grant Safe commands; suspend Destructive ones on the approval channel."""
        command_class, violation = self.classify_command(name)
        if violation is not None:
            return violation
        if command_class is CommandClass.SAFE:
            return None

        if self.approval is None:
            return authorization_denied(name, "no approval channel is configured")

        req = ApprovalRequest(command=name, intent_id=intent_id, details=dict(details or {}))
        decision, reason = await_decision(self.approval, req, self.approval_timeout_s, cancel=cancel)
        if decision is ApprovalDecision.GRANTED:
            logger.info("Destructive command '%s' approved for intent %s", name, intent_id)
            return None
        return authorization_denied(name, reason)

    def check_staleness(self, path: str, expected_hash: Optional[str]) -> Optional[Violation]:
        """Fail if the file's current hash differs from the one read earlier."""
        actual = hash_stored_file(self.storage, path)
        if actual == expected_hash:
            return None
        return stale_file(path, expected_hash, actual)
