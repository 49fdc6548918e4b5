# portfolio_chat/tree/engine.py
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

ROOT_ID = "welcome"
DEFAULT_TREE_PATH = Path(__file__).with_name("chatbot_tree.json")


class NodeKind(str, Enum):
    MULTIPLE_CHOICE = "multiple_choice"
    AI_HANDOFF = "ai_handoff"


@dataclass(frozen=True)
class TreeOption:
    text: str
    value: str
    next_id: str

    def to_dict(self) -> Dict[str, str]:
        return {"text": self.text, "value": self.value, "nextId": self.next_id}


@dataclass(frozen=True)
class TreeNode:
    id: str
    message: str
    kind: NodeKind
    options: Tuple[TreeOption, ...] = ()

    def options_as_dicts(self) -> List[Dict[str, str]]:
        return [o.to_dict() for o in self.options]


@dataclass(frozen=True)
class DecisionTree:
    """
    Static tree configuration. The root lives apart from the keyed nodes and
    is always addressed as "welcome", whatever id the config file gives it.
    """

    root: TreeNode
    nodes: Mapping[str, TreeNode] = field(default_factory=dict)

    def lookup(self, node_id: Optional[str]) -> Optional[TreeNode]:
        if node_id == ROOT_ID:
            return self.root
        if not node_id:
            return None
        return self.nodes.get(node_id)

    def dangling_references(self) -> List[Tuple[str, str, str]]:
        """
        (node_id, option_value, next_id) for every option whose target doesn't resolve.
        """
        out = []
        for node in (self.root, *self.nodes.values()):
            for opt in node.options:
                if self.lookup(opt.next_id) is None:
                    out.append((node.id, opt.value, opt.next_id))
        return out


@dataclass(frozen=True)
class TreeResponse:
    message: str
    options: Tuple[TreeOption, ...]
    next_node_id: Optional[str] = None
    handoff_to_ai: bool = False


# ---------------------------
# Loading
# ---------------------------
def _parse_node(node_id: str, raw: Dict[str, Any]) -> TreeNode:
    try:
        kind = NodeKind(raw.get("type") or NodeKind.MULTIPLE_CHOICE.value)
    except ValueError:
        raise ValueError(f"Node {node_id!r} has unknown type {raw.get('type')!r}")

    options = []
    for opt in raw.get("options") or []:
        try:
            options.append(TreeOption(text=opt["text"], value=opt["value"], next_id=opt["nextId"]))
        except KeyError as e:
            raise ValueError(f"Option under node {node_id!r} is missing {e.args[0]!r}")

    if "message" not in raw:
        raise ValueError(f"Node {node_id!r} has no message")

    return TreeNode(id=node_id, message=raw["message"], kind=kind, options=tuple(options))


def parse_tree(data: Dict[str, Any]) -> DecisionTree:
    root = _parse_node(ROOT_ID, data)
    nodes = {
        node_id: _parse_node(node_id, raw)
        for node_id, raw in (data.get("nodes") or {}).items()
    }
    tree = DecisionTree(root=root, nodes=MappingProxyType(nodes))

    for node_id, value, next_id in tree.dangling_references():
        logger.warning("Tree option %r under node %r points at unknown node %r", value, node_id, next_id)
    return tree


def load_tree(path: str | Path | None = None) -> DecisionTree:
    path = Path(path or os.getenv("CHATBOT_TREE_PATH") or DEFAULT_TREE_PATH)
    with path.open(encoding="utf-8") as fh:
        data = json.load(fh)
    tree = parse_tree(data)
    logger.info("Loaded decision tree from %s (%d nodes)", path, len(tree.nodes) + 1)
    return tree


# ---------------------------
# Engine
# ---------------------------
class DecisionTreeEngine:
    """
    Pure navigation over an immutable DecisionTree.

    Bad navigation state (unknown node, unknown choice, dangling target) never
    raises: the engine restarts the flow at the root instead.
    """

    def __init__(self, tree: DecisionTree):
        self.tree = tree

    def get_starting_node(self) -> TreeNode:
        return self.tree.root

    def get_node(self, node_id: str) -> Optional[TreeNode]:
        return self.tree.lookup(node_id)

    def process_choice(self, current_node_id: str, user_choice: str) -> TreeResponse:
        current = self.tree.lookup(current_node_id)
        if current is None:
            logger.warning("Unknown tree node %r, restarting at root", current_node_id)
            return self._restart()

        # first match in listed order wins
        selected = next((o for o in current.options if o.value == user_choice), None)
        if selected is None:
            logger.warning("No option %r under node %r, restarting at root", user_choice, current_node_id)
            return self._restart()

        target = self.tree.lookup(selected.next_id)
        if target is None:
            logger.warning("Option %r points at unknown node %r, restarting at root", user_choice, selected.next_id)
            return self._restart()

        if target.kind is NodeKind.AI_HANDOFF:
            return TreeResponse(message=target.message, options=(), handoff_to_ai=True)

        return TreeResponse(
            message=target.message,
            options=target.options,
            next_node_id=selected.next_id,
        )

    def _restart(self) -> TreeResponse:
        root = self.tree.root
        return TreeResponse(message=root.message, options=root.options, next_node_id=ROOT_ID)
