from langgraph.graph import StateGraph, END

from portfolio_chat.graph.state import BACK_TO_TREE, BACK_TO_TREE_OPTION, Mode, TurnState
from portfolio_chat.llm.rag import ResponseGenerator
from portfolio_chat.tree.engine import DecisionTreeEngine


# ---------------------------
# Utilities
# ---------------------------
def add_trace(state: TurnState, node: str, detail: dict):
    state.setdefault("trace", [])
    state["trace"].append({"node": node, "detail": detail})


def pick_branch(state: TurnState) -> str:
    if state.get("user_choice") == BACK_TO_TREE:
        return "start"

    mode = state["mode"]
    if mode is Mode.TREE:
        if not state.get("current_node_id") and not state.get("user_choice"):
            return "start"
        return "tree"
    if mode is Mode.AI:
        return "ai"
    raise ValueError(f"Unhandled mode: {mode!r}")


# ---------------------------
# Build graph
# ---------------------------
def build_graph(engine: DecisionTreeEngine, generator: ResponseGenerator):
    """
    One compiled graph per app. Routing:

        route --start--> start (root node)      --> END
              --tree---> tree  (process choice) --> END
              --ai-----> ai    (RAG answer)     --> END
    """

    def node_route(state: TurnState) -> TurnState:
        add_trace(state, "route", {"mode": state["mode"].value, "branch": pick_branch(state)})
        return state

    def node_start(state: TurnState) -> TurnState:
        root = engine.get_starting_node()
        state["reply"] = root.message
        state["options"] = root.options_as_dicts()
        state["next_node_id"] = root.id
        state["result_mode"] = Mode.TREE
        state["message_type"] = "decision_tree"
        add_trace(state, "start", {"node": root.id})
        return state

    def node_tree(state: TurnState) -> TurnState:
        resp = engine.process_choice(state.get("current_node_id") or "", state.get("user_choice") or "")
        state["reply"] = resp.message
        state["options"] = [o.to_dict() for o in resp.options]
        state["next_node_id"] = resp.next_node_id
        state["message_type"] = "decision_tree"

        if resp.handoff_to_ai:
            # next request comes in AI mode
            state["result_mode"] = Mode.AI
            state["options"] = []
            state["next_node_id"] = None
        else:
            state["result_mode"] = Mode.TREE

        add_trace(state, "tree", {
            "from": state.get("current_node_id"),
            "choice": state.get("user_choice"),
            "next": state["next_node_id"],
            "handoff": resp.handoff_to_ai,
        })
        return state

    def node_ai(state: TurnState) -> TurnState:
        reply = generator.answer(state.get("message") or "", state.get("history") or "")
        state["reply"] = reply
        state["options"] = [dict(BACK_TO_TREE_OPTION)]
        state["next_node_id"] = None
        state["result_mode"] = Mode.AI
        state["message_type"] = "text"
        add_trace(state, "ai", {"chars": len(reply)})
        return state

    g = StateGraph(TurnState)

    g.add_node("route", node_route)
    g.add_node("start", node_start)
    g.add_node("tree", node_tree)
    g.add_node("ai", node_ai)

    g.set_entry_point("route")

    g.add_conditional_edges("route", pick_branch, {
        "start": "start",
        "tree": "tree",
        "ai": "ai",
    })

    g.add_edge("start", END)
    g.add_edge("tree", END)
    g.add_edge("ai", END)

    return g.compile()
