"""LangGraph wrapper for the hook engine - trace harness only.

Wraps the engine's step methods in a LangGraph StateGraph so each stage of
a governed mutation is visible as a node in LangGraph Studio.

NO new orchestration logic. Same steps, same HookResult, same ledger
behavior as HookEngine.execute_with_hooks; just structured visibility.
"""

import threading
from typing import Any, Optional
from typing_extensions import TypedDict

from langgraph.graph import StateGraph, END

from governance_hooks.gate import MUTATION_CLASS_BY_TOOL
from governance_hooks.hooks import Action, HookEngine, HookResult, MutationRequest


class HookGraphState(TypedDict):
    """State for the hook graph."""
    tool_name: str
    intent_id: Optional[str]
    phase: str  # mirrors HookResult.state for Studio readability
    # Runtime references (passed through state)
    engine: Any
    action: Any
    meta: Any
    cancel: Any
    result: Any


def _update(state: HookGraphState, result: HookResult) -> HookGraphState:
    return {**state, "result": result, "phase": result.state.value}


# --- Graph Nodes ---

def node_start(state: HookGraphState) -> HookGraphState:
    """REQUESTED: classify the tool."""
    return _update(state, state["engine"].begin(state["meta"]))


def node_intent_check(state: HookGraphState) -> HookGraphState:
    result = state["result"]
    state["engine"].check_intent(result, state["intent_id"], state["meta"])
    return _update(state, result)


def node_scope_check(state: HookGraphState) -> HookGraphState:
    result = state["result"]
    state["engine"].check_scope(result, state["meta"])
    return _update(state, result)


def node_authorization(state: HookGraphState) -> HookGraphState:
    result = state["result"]
    state["engine"].check_authorization(result, state["meta"], cancel=state["cancel"])
    return _update(state, result)


def node_commit(state: HookGraphState) -> HookGraphState:
    """EXECUTING + LOGGING under the commit guard."""
    result = state["engine"].commit(state["result"], state["action"], state["meta"])
    return _update(state, result)


def node_read_only(state: HookGraphState) -> HookGraphState:
    result = state["engine"].run_read_only(state["result"], state["action"])
    return _update(state, result)


# --- Conditional Edges ---

def route_after_start(state: HookGraphState) -> str:
    if state["result"].blocked:
        return "end"
    if state["tool_name"] not in MUTATION_CLASS_BY_TOOL:
        return "read_only"
    return "intent_check"


def continue_unless_blocked(state: HookGraphState) -> str:
    return "end" if state["result"].blocked else "continue"


# --- Graph Builder ---

def build_hook_graph() -> StateGraph:
    """
    Build the hook graph.

    Flow:
        start -> intent_check -> scope_check -> authorization -> commit -> end
          |            \\______________\\______________\\-> (blocked) -> end
          +-> read_only -> end
    """
    graph = StateGraph(HookGraphState)

    graph.add_node("start", node_start)
    graph.add_node("intent_check", node_intent_check)
    graph.add_node("scope_check", node_scope_check)
    graph.add_node("authorization", node_authorization)
    graph.add_node("commit", node_commit)
    graph.add_node("read_only", node_read_only)

    graph.set_entry_point("start")

    graph.add_conditional_edges(
        "start",
        route_after_start,
        {"end": END, "read_only": "read_only", "intent_check": "intent_check"},
    )
    graph.add_conditional_edges("intent_check", continue_unless_blocked, {"end": END, "continue": "scope_check"})
    graph.add_conditional_edges("scope_check", continue_unless_blocked, {"end": END, "continue": "authorization"})
    graph.add_conditional_edges("authorization", continue_unless_blocked, {"end": END, "continue": "commit"})
    graph.add_edge("commit", END)
    graph.add_edge("read_only", END)

    return graph


def run_hook_graph(
    engine: HookEngine,
    action: Action,
    intent_id: Optional[str],
    meta: MutationRequest,
    cancel: Optional[threading.Event] = None,
) -> HookResult:
    """
    Run the hook graph and return the final HookResult.

    This is the traced equivalent of HookEngine.execute_with_hooks().
    LangSmith records the run when LANGSMITH_TRACING is enabled.
    """
    from langsmith import traceable

    compiled = build_hook_graph().compile()

    initial_state: HookGraphState = {
        "tool_name": meta.tool_name,
        "intent_id": intent_id,
        "phase": "PENDING",
        "engine": engine,
        "action": action,
        "meta": meta,
        "cancel": cancel,
        "result": None,
    }

    @traceable(
        name=f"hook_{meta.tool_name}",
        run_type="chain",
        metadata={
            "tool_name": meta.tool_name,
            "intent_id": intent_id,
            "paths": list(meta.paths),
            "ruleset_version": engine.gate.ruleset_version,
        },
    )
    def _traced_invoke(state: HookGraphState) -> dict:
        final_state = compiled.invoke(state)
        return {"result": final_state["result"], "summary": final_state["result"].to_dict()}

    return _traced_invoke(initial_state)["result"]


# Pre-compiled graph for Studio discovery
hook_graph = build_hook_graph().compile()
