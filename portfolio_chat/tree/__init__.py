from portfolio_chat.tree.engine import (
    ROOT_ID,
    DecisionTree,
    DecisionTreeEngine,
    NodeKind,
    TreeNode,
    TreeOption,
    TreeResponse,
    load_tree,
    parse_tree,
)

__all__ = [
    "ROOT_ID",
    "DecisionTree",
    "DecisionTreeEngine",
    "NodeKind",
    "TreeNode",
    "TreeOption",
    "TreeResponse",
    "load_tree",
    "parse_tree",
]
