"""Wire the components together from a Config."""

from dataclasses import dataclass
from typing import Callable, Optional

from governance_hooks.approval import ApprovalChannel, HttpApprovalChannel
from governance_hooks.config import Config
from governance_hooks.gate import Gate
from governance_hooks.hooks import HookEngine, HookResult
from governance_hooks.intents import IntentRegistry
from governance_hooks.ledger import Ledger
from governance_hooks.post_hook import PostHook
from governance_hooks.semantic import SemanticCapture
from governance_hooks.session import GovernanceSession
from governance_hooks.storage import LocalStorage, Storage
from governance_hooks.tools import GovernedTools
from governance_hooks.vcs import GitRevisionProvider, RevisionProvider, StaticRevisionProvider


@dataclass
class Runtime:
    config: Config
    storage: Storage
    registry: IntentRegistry
    gate: Gate
    ledger: Ledger
    engine: HookEngine

    def new_session(self) -> GovernanceSession:
        return GovernanceSession(self.engine, self.registry)

    def tools_for(self, session: GovernanceSession) -> GovernedTools:
        root = self.storage.root if isinstance(self.storage, LocalStorage) else None
        return GovernedTools(session, self.storage, workspace_root=root)


def build_runtime(
    config: Config,
    storage: Optional[Storage] = None,
    approval: Optional[ApprovalChannel] = None,
    semantic: Optional[SemanticCapture] = None,
    revisions: Optional[RevisionProvider] = None,
    on_blocked: Optional[Callable[[HookResult], None]] = None,
) -> Runtime:
    """
    Build a ready-to-use runtime.

    Args:
        config: Loaded configuration.
        storage: Defaults to LocalStorage over config.workspace.
        approval: Defaults to an HTTP channel when GOVERNANCE_APPROVAL_URL is set.
        semantic: Optional semantic capture plugin.
        revisions: Defaults to git for local workspaces.
        on_blocked: Callback receiving every BLOCKED result.
    """
    if storage is None:
        storage = LocalStorage.from_path(config.workspace)
    if approval is None and config.approval_url:
        approval = HttpApprovalChannel(config.approval_url, timeout=config.approval_timeout_s)
    if revisions is None:
        if isinstance(storage, LocalStorage):
            revisions = GitRevisionProvider(storage.root)
        else:
            revisions = StaticRevisionProvider()

    registry = IntentRegistry(storage, config.intents_path)
    gate = Gate(
        registry,
        storage,
        approval=approval,
        strict_intents=config.strict_intents,
        approval_timeout_s=config.approval_timeout_s,
        protected_paths=(config.ledger_path,),
    )
    ledger = Ledger(storage, config.ledger_path, retries=config.ledger_retries)
    post_hook = PostHook(ledger, revisions=revisions, semantic=semantic, model_identifier=config.model_identifier)
    engine = HookEngine(gate, post_hook, on_blocked=on_blocked)
    return Runtime(
        config=config,
        storage=storage,
        registry=registry,
        gate=gate,
        ledger=ledger,
        engine=engine,
    )
