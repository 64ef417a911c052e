"""Tests for ledger summaries and the workspace drift audit."""

import pytest

from governance_hooks.approval import StaticApprovalChannel
from governance_hooks.observe import (
    DriftStatus,
    audit_drift,
    format_duration,
    print_drift_report,
    print_intent_summary,
    summarize_intent,
)


def _tools(runtime, intent_id):
    session = runtime.new_session()
    session.select_active_intent(intent_id)
    return runtime.tools_for(session)


@pytest.fixture
def busy_runtime(make_runtime):
    runtime = make_runtime(
        files={"src/core/old.py": "legacy\n", "README.md": "# readme\n"},
        approval=StaticApprovalChannel(grant=True),
    )
    core = _tools(runtime, "INT-001")
    docs = _tools(runtime, "INT-002")
    core.write_file("src/core/a.py", "a = 1\n", model_identifier="model-a")
    core.write_file("src/core/b.py", "b = 1\n", model_identifier="model-b")
    docs.write_file("docs/guide.md", "# guide\n")
    core.delete_file("src/core/old.py")
    return runtime


class TestSummarizeIntent:
    def test_counts_and_paths(self, busy_runtime):
        summary = summarize_intent(busy_runtime.ledger, "INT-001")
        assert len(summary.entries) == 3
        assert summary.by_class == {"Write": 2, "Delete": 1}
        assert summary.paths == ["src/core/a.py", "src/core/b.py", "src/core/old.py"]
        assert summary.models == ["model-a", "model-b", "unknown"]

    def test_unknown_intent(self, busy_runtime):
        summary = summarize_intent(busy_runtime.ledger, "INT-404")
        assert summary.entries == []
        assert summary.first_timestamp is None

    def test_print_summary(self, busy_runtime, capsys):
        print_intent_summary(busy_runtime.ledger, "INT-002")
        out = capsys.readouterr().out
        assert "INTENT SUMMARY: INT-002" in out
        assert "docs/guide.md" in out

    def test_print_summary_without_entries(self, busy_runtime, capsys):
        print_intent_summary(busy_runtime.ledger, "INT-404")
        assert "No trace entries found." in capsys.readouterr().out


class TestDriftAudit:
    def test_clean_workspace(self, busy_runtime):
        records = audit_drift(busy_runtime.ledger, busy_runtime.storage)
        assert [r.path for r in records] == ["docs/guide.md", "src/core/a.py", "src/core/b.py", "src/core/old.py"]
        assert not any(r.drifted for r in records)

    def test_cosmetic_edit_is_not_drift(self, busy_runtime):
        busy_runtime.storage.write_text("src/core/a.py", "a = 1   \r\n\r\n")
        assert not any(r.drifted for r in audit_drift(busy_runtime.ledger, busy_runtime.storage))

    def test_untraced_edit_is_detected(self, busy_runtime):
        busy_runtime.storage.write_text("src/core/a.py", "a = 2\n")
        busy_runtime.storage.delete("src/core/b.py")
        busy_runtime.storage.write_text("src/core/old.py", "back again\n")

        status = {r.path: r.status for r in audit_drift(busy_runtime.ledger, busy_runtime.storage)}
        assert status["src/core/a.py"] == DriftStatus.MODIFIED
        assert status["src/core/b.py"] == DriftStatus.MISSING
        assert status["src/core/old.py"] == DriftStatus.REAPPEARED
        assert status["docs/guide.md"] == DriftStatus.CLEAN

    def test_latest_entry_wins(self, busy_runtime):
        _tools(busy_runtime, "INT-001").write_file("src/core/a.py", "a = 3\n")
        record = next(r for r in audit_drift(busy_runtime.ledger, busy_runtime.storage) if r.path == "src/core/a.py")
        assert record.status == DriftStatus.CLEAN
        assert record.entry_id == busy_runtime.ledger.entries()[-1].id

    def test_report(self, busy_runtime, capsys):
        busy_runtime.storage.write_text("src/core/a.py", "tampered\n")
        print_drift_report(audit_drift(busy_runtime.ledger, busy_runtime.storage))
        out = capsys.readouterr().out
        assert "4 traced, 1 drifted" in out
        assert "modified" in out


class TestFormatDuration:
    @pytest.mark.parametrize("seconds, expected", [
        (0.25, "250ms"),
        (12.34, "12.3s"),
        (125, "2m 5s"),
        (3720, "1h 2m"),
    ])
    def test_format(self, seconds, expected):
        assert format_duration(seconds) == expected


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
