"""Post-hook: record one trace entry per completed mutation."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from governance_hooks.constants import DEFAULT_ENTITY_TYPE, DEFAULT_MODEL_IDENTIFIER
from governance_hooks.errors import LedgerWriteError, Violation, ledger_write_failure, semantic_capture_failure
from governance_hooks.hashing import Content, compute_content_hash, normalize_content
from governance_hooks.ledger import Contributor, FileRecord, Ledger, MutationClass, TraceEntry
from governance_hooks.semantic import SemanticCapture
from governance_hooks.storage import normalize_rel_path
from governance_hooks.vcs import RevisionProvider, StaticRevisionProvider

logger = logging.getLogger(__name__)


@dataclass
class LogOutcome:
    """What the post-hook did: the appended entry, or why it could not."""
    entry: Optional[TraceEntry] = None
    violation: Optional[Violation] = None
    warnings: List[Violation] = field(default_factory=list)


class PostHook:
    def __init__(
        self,
        ledger: Ledger,
        revisions: Optional[RevisionProvider] = None,
        semantic: Optional[SemanticCapture] = None,
        entity_type: str = DEFAULT_ENTITY_TYPE,
        model_identifier: str = DEFAULT_MODEL_IDENTIFIER,
    ):
        self.ledger = ledger
        self.revisions = revisions or StaticRevisionProvider()
        self.semantic = semantic
        self.entity_type = entity_type
        self.model_identifier = model_identifier

    @staticmethod
    def compute_content_hash(content: Content) -> str:
        return compute_content_hash(content)

    def capture_semantic_link(self, path: str, content: Content) -> Tuple[Tuple[str, ...], Optional[Violation]]:
        """Best effort: failures are logged and returned as a warning, never raised."""
        if self.semantic is None:
            return (), None
        try:
            links = self.semantic.capture(path, normalize_content(content))
        except Exception as e:
            logger.warning("Semantic capture failed for %s: %s", path, e)
            return (), semantic_capture_failure(path, str(e))
        return tuple(str(link) for link in (links or ())), None

    def build_entry(
        self,
        intent_id: str,
        mutation_class: MutationClass,
        contents: Sequence[Tuple[str, Content]],
        model_identifier: Optional[str] = None,
    ) -> Tuple[TraceEntry, List[Violation]]:
        """Hash each (path, final content) pair and assemble one entry."""
        warnings = []
        records = []
        for path, content in contents:
            links: Tuple[str, ...] = ()
            if mutation_class is MutationClass.WRITE:
                links, warning = self.capture_semantic_link(path, content)
                if warning is not None:
                    warnings.append(warning)
            records.append(FileRecord(
                relative_path=normalize_rel_path(path),
                content_hash=compute_content_hash(content),
                semantic_links=links,
            ))

        entry = TraceEntry.create(
            intent_id=intent_id,
            mutation_class=mutation_class,
            files=records,
            vcs_revision=self.revisions.current_revision(),
            contributor=Contributor(
                entity_type=self.entity_type,
                model_identifier=model_identifier or self.model_identifier,
            ),
        )
        return entry, warnings

    def log(self, entry: TraceEntry) -> Optional[Violation]:
        """Append exactly one entry; a failure is surfaced, never swallowed."""
        try:
            self.ledger.append(entry)
        except LedgerWriteError as e:
            logger.error("UNRECORDED MUTATION for intent %s: %s", entry.intent_id, e)
            return ledger_write_failure(str(e))
        logger.info(
            "Trace %s: %s %s (intent %s)",
            entry.id, entry.mutation_class.value,
            ", ".join(r.relative_path for r in entry.files), entry.intent_id,
        )
        return None

    def record(
        self,
        intent_id: str,
        mutation_class: MutationClass,
        contents: Sequence[Tuple[str, Content]],
        model_identifier: Optional[str] = None,
    ) -> LogOutcome:
        entry, warnings = self.build_entry(intent_id, mutation_class, contents, model_identifier)
        violation = self.log(entry)
        if violation is not None:
            return LogOutcome(violation=violation, warnings=warnings)
        return LogOutcome(entry=entry, warnings=warnings)
