"""Per-session active intent state and intent selection.

Each agent/task owns a SessionContext; there is no process-wide "active
intent", so concurrent sessions in one process cannot authorize each
other's mutations.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from html import escape
from typing import Optional, Tuple

from governance_hooks.constants import PERMISSIVE_SCOPE
from governance_hooks.errors import Violation, intent_not_active, intent_not_found, missing_intent
from governance_hooks.hooks import Action, HookEngine, HookResult, MutationRequest
from governance_hooks.intents import Intent, IntentRegistry, IntentStatus

logger = logging.getLogger(__name__)


@dataclass
class SessionContext:
    session_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    active_intent_id: Optional[str] = None


@dataclass(frozen=True)
class IntentContext:
    """Descriptor handed back to the model after selecting an intent."""
    id: str
    name: str
    status: str
    owned_scope: Tuple[str, ...]
    constraints: Tuple[str, ...] = ()
    acceptance_criteria: Tuple[str, ...] = ()
    verified: bool = True

    @classmethod
    def from_intent(cls, intent: Intent) -> "IntentContext":
        return cls(
            id=intent.id,
            name=intent.name,
            status=intent.status.value,
            owned_scope=intent.owned_scope,
            constraints=intent.constraints,
            acceptance_criteria=intent.acceptance_criteria,
        )

    def to_xml(self) -> str:
        def _list(items: Tuple[str, ...]) -> str:
            return escape(", ".join(items)) if items else "(none)"

        return " ".join([
            f'<intent_context verified="{str(self.verified).lower()}">',
            f"<id>{escape(self.id)}</id>",
            f"<name>{escape(self.name)}</name>",
            f"<status>{escape(self.status)}</status>",
            f"<scope>{_list(self.owned_scope)}</scope>",
            f"<constraints>{_list(self.constraints)}</constraints>",
            f"<acceptance_criteria>{_list(self.acceptance_criteria)}</acceptance_criteria>",
            "</intent_context>",
        ])


def select_active_intent(
    session: SessionContext,
    registry: IntentRegistry,
    intent_id: Optional[str],
) -> Tuple[Optional[IntentContext], Optional[Violation]]:
    """
    Set the session's active intent.

    - blank id                          -> MissingIntent, state unchanged
    - id declared and active            -> verified descriptor
    - id declared, draft or completed   -> IntentNotActive, state unchanged
    - id unknown, registry empty        -> unverified permissive descriptor
    - id unknown, registry populated    -> IntentNotFound, state unchanged
    """
    if intent_id is None or not str(intent_id).strip():
        return None, missing_intent("select_active_intent")

    intent_id = str(intent_id).strip()
    intent = registry.lookup(intent_id)
    if intent is not None:
        if intent.status is not IntentStatus.ACTIVE:
            return None, intent_not_active(intent.id, intent.status.value)
        session.active_intent_id = intent.id
        logger.info("Session %s selected intent %s", session.session_id, intent.id)
        return IntentContext.from_intent(intent), None

    if not registry.is_empty():
        return None, intent_not_found(intent_id)

    logger.warning(
        "Session %s selected unregistered intent %s (registry %s is empty)",
        session.session_id, intent_id, registry.path,
    )
    session.active_intent_id = intent_id
    return IntentContext(
        id=intent_id,
        name=intent_id,
        status="unregistered",
        owned_scope=PERMISSIVE_SCOPE,
        verified=False,
    ), None


class GovernanceSession:
    """A session bound to an engine: selects intents, runs governed actions."""

    def __init__(self, engine: HookEngine, registry: IntentRegistry, context: Optional[SessionContext] = None):
        self.engine = engine
        self.registry = registry
        self.context = context or SessionContext()

    @property
    def active_intent_id(self) -> Optional[str]:
        return self.context.active_intent_id

    def select_active_intent(self, intent_id: Optional[str]) -> Tuple[Optional[IntentContext], Optional[Violation]]:
        return select_active_intent(self.context, self.registry, intent_id)

    def execute(
        self,
        action: Action,
        meta: MutationRequest,
        cancel: Optional[threading.Event] = None,
    ) -> HookResult:
        return self.engine.execute_with_hooks(action, self.context.active_intent_id, meta, cancel=cancel)
