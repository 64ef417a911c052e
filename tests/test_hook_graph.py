"""Tests for the LangGraph trace harness (same behavior as the plain engine)."""

import pytest

from governance_hooks.approval import StaticApprovalChannel
from governance_hooks.errors import ErrorKind
from governance_hooks.hook_graph import build_hook_graph, run_hook_graph
from governance_hooks.hooks import HookState, MutationOutcome, MutationRequest


@pytest.fixture(autouse=True)
def no_tracing(monkeypatch):
    for var in ("LANGSMITH_TRACING", "LANGCHAIN_TRACING_V2"):
        monkeypatch.delenv(var, raising=False)


def _write_action(runtime, path, content):
    def action():
        runtime.storage.write_text(path, content)
        return MutationOutcome(contents=[(path, content)], value=len(content))

    return action


class TestGraphShape:
    def test_nodes(self):
        nodes = set(build_hook_graph().compile().get_graph().nodes)
        assert {"start", "intent_check", "scope_check", "authorization", "commit", "read_only"} <= nodes


class TestGraphRun:
    def test_write_reaches_done(self, runtime):
        meta = MutationRequest(tool_name="write_to_file", paths=("src/core/a.py",))
        result = run_hook_graph(runtime.engine, _write_action(runtime, "src/core/a.py", "x"), "INT-001", meta)
        assert result.state is HookState.DONE
        assert result.transitions == [
            HookState.REQUESTED,
            HookState.INTENT_CHECK,
            HookState.SCOPE_CHECK,
            HookState.EXECUTING,
            HookState.LOGGING,
            HookState.DONE,
        ]
        assert runtime.ledger.count() == 1

    def test_missing_intent_stops_at_intent_check(self, runtime):
        meta = MutationRequest(tool_name="write_to_file", paths=("src/core/a.py",))
        result = run_hook_graph(runtime.engine, _write_action(runtime, "src/core/a.py", "x"), None, meta)
        assert result.violation.kind is ErrorKind.MISSING_INTENT
        assert not runtime.storage.exists("src/core/a.py")
        assert runtime.ledger.count() == 0

    def test_scope_violation_stops_at_scope_check(self, runtime):
        meta = MutationRequest(tool_name="write_to_file", paths=("docs/a.md",))
        result = run_hook_graph(runtime.engine, _write_action(runtime, "docs/a.md", "x"), "INT-001", meta)
        assert result.transitions[-2:] == [HookState.SCOPE_CHECK, HookState.BLOCKED]

    def test_unknown_tool_stops_at_start(self, runtime):
        result = run_hook_graph(runtime.engine, lambda: MutationOutcome(), "INT-001", MutationRequest(tool_name="frobnicate"))
        assert result.transitions == [HookState.REQUESTED, HookState.BLOCKED]

    def test_read_only_branch(self, runtime):
        meta = MutationRequest(tool_name="list_files", paths=("src",))
        result = run_hook_graph(runtime.engine, lambda: ["src/core/engine.py"], None, meta)
        assert result.ok
        assert result.value == ["src/core/engine.py"]

    def test_destructive_passes_through_authorization(self, make_runtime):
        runtime = make_runtime(files={"src/core/old.py": "x"}, approval=StaticApprovalChannel(grant=False))
        meta = MutationRequest(tool_name="delete_file", paths=("src/core/old.py",))
        result = run_hook_graph(runtime.engine, lambda: MutationOutcome(), "INT-001", meta)
        assert result.transitions[-2:] == [HookState.AUTHORIZATION, HookState.BLOCKED]
        assert result.violation.kind is ErrorKind.AUTHORIZATION_DENIED

    def test_matches_plain_engine(self, make_runtime):
        graph_rt = make_runtime()
        plain_rt = make_runtime()
        meta = MutationRequest(tool_name="write_to_file", paths=("src/core/a.py",))

        via_graph = run_hook_graph(graph_rt.engine, _write_action(graph_rt, "src/core/a.py", "x"), "INT-001", meta)
        via_engine = plain_rt.engine.execute_with_hooks(_write_action(plain_rt, "src/core/a.py", "x"), "INT-001", meta)

        assert via_graph.transitions == via_engine.transitions
        assert via_graph.entry.files == via_engine.entry.files


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
