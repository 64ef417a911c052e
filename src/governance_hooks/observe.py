"""Minimal observation surface over the trace ledger.

Read-only. Never appends to the ledger, never touches workspace content.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from governance_hooks.hashing import hash_stored_file
from governance_hooks.ledger import Ledger, MutationClass, TraceEntry
from governance_hooks.storage import Storage


class DriftStatus:
    CLEAN = "clean"
    MODIFIED = "modified"
    MISSING = "missing"
    REAPPEARED = "reappeared"


@dataclass(frozen=True)
class DriftRecord:
    path: str
    status: str
    recorded_hash: str
    current_hash: Optional[str]
    entry_id: str
    intent_id: str

    @property
    def drifted(self) -> bool:
        return self.status != DriftStatus.CLEAN


@dataclass
class IntentSummary:
    intent_id: str
    entries: List[TraceEntry] = field(default_factory=list)
    by_class: Counter = field(default_factory=Counter)
    paths: List[str] = field(default_factory=list)
    models: List[str] = field(default_factory=list)

    @property
    def first_timestamp(self) -> Optional[str]:
        return self.entries[0].timestamp if self.entries else None

    @property
    def last_timestamp(self) -> Optional[str]:
        return self.entries[-1].timestamp if self.entries else None


def format_duration(seconds: float) -> str:
    """Format duration in human-readable form."""
    if seconds < 1:
        return f"{seconds*1000:.0f}ms"
    elif seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        mins = int(seconds // 60)
        secs = seconds % 60
        return f"{mins}m {secs:.0f}s"
    else:
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"


def _span_seconds(first: str, last: str) -> Optional[float]:
    try:
        return (datetime.fromisoformat(last) - datetime.fromisoformat(first)).total_seconds()
    except ValueError:
        return None


def summarize_intent(ledger: Ledger, intent_id: str) -> IntentSummary:
    """Collect every ledger entry recorded under ``intent_id``, in append order."""
    summary = IntentSummary(intent_id=intent_id)
    for entry in ledger.entries():
        if entry.intent_id != intent_id:
            continue
        summary.entries.append(entry)
        summary.by_class[entry.mutation_class.value] += 1
        for record in entry.files:
            if record.relative_path not in summary.paths:
                summary.paths.append(record.relative_path)
        if entry.contributor.model_identifier not in summary.models:
            summary.models.append(entry.contributor.model_identifier)
    return summary


def latest_by_path(entries: List[TraceEntry]) -> Dict[str, TraceEntry]:
    """Last entry touching each file path. Command entries name a cwd, not a file, and are skipped."""
    latest: Dict[str, TraceEntry] = {}
    for entry in entries:
        if entry.mutation_class is MutationClass.COMMAND:
            continue
        for record in entry.files:
            latest[record.relative_path] = entry
    return latest


def audit_drift(ledger: Ledger, storage: Storage) -> List[DriftRecord]:
    """
    Compare the most recently recorded hash of every traced path with the
    workspace as it is now.

    A written path whose content changed since its last entry is MODIFIED;
    one that no longer exists is MISSING. A deleted path that exists again
    is REAPPEARED.
    """
    records = []
    for path, entry in sorted(latest_by_path(ledger.entries()).items()):
        recorded = next(r.content_hash for r in entry.files if r.relative_path == path)
        current = hash_stored_file(storage, path)

        if entry.mutation_class is MutationClass.DELETE:
            status = DriftStatus.CLEAN if current is None else DriftStatus.REAPPEARED
        elif current is None:
            status = DriftStatus.MISSING
        elif current == recorded:
            status = DriftStatus.CLEAN
        else:
            status = DriftStatus.MODIFIED

        records.append(DriftRecord(
            path=path,
            status=status,
            recorded_hash=recorded,
            current_hash=current,
            entry_id=entry.id,
            intent_id=entry.intent_id,
        ))
    return records


def print_intent_summary(ledger: Ledger, intent_id: str) -> None:
    """
    Print a human-readable summary of everything recorded under an intent.

    Goal: understand what an intent touched in under 30 seconds.
    """
    summary = summarize_intent(ledger, intent_id)

    # Header
    print("=" * 60)
    print(f"INTENT SUMMARY: {intent_id}")
    print("=" * 60)
    print()

    if not summary.entries:
        print("No trace entries found.")
        print()
        print(f"Searched: {ledger.path}")
        return

    print("ACTIVITY")
    print("-" * 40)
    print(f"  Entries:     {len(summary.entries)}")
    for mutation_class, count in sorted(summary.by_class.items()):
        print(f"    {mutation_class:<9} {count}")
    print(f"  First:       {summary.first_timestamp[:19]}")
    print(f"  Last:        {summary.last_timestamp[:19]}")
    span = _span_seconds(summary.first_timestamp, summary.last_timestamp)
    if span is not None and len(summary.entries) > 1:
        print(f"  Span:        {format_duration(span)}")
    print(f"  Models:      {', '.join(summary.models)}")
    print()

    print("PATHS")
    print("-" * 40)
    for path in summary.paths[:20]:
        print(f"  {path}")
    if len(summary.paths) > 20:
        print(f"  ... and {len(summary.paths) - 20} more")
    print()

    print("RECENT")
    print("-" * 40)
    for entry in summary.entries[-5:]:
        files = ", ".join(r.relative_path for r in entry.files)
        print(f"  {entry.timestamp[:19]}  {entry.mutation_class.value:<7} {files[:40]}")
    print()


def print_drift_report(records: List[DriftRecord]) -> None:
    print("=" * 60)
    print("WORKSPACE DRIFT")
    print("=" * 60)
    print()

    if not records:
        print("No traced paths.")
        return

    drifted = [r for r in records if r.drifted]
    for r in records:
        icon = "✓" if not r.drifted else "✗"
        print(f"  {icon} {r.status:<10} {r.path}  ({r.intent_id})")
    print()
    print(f"  {len(records)} traced, {len(drifted)} drifted")
    print()
