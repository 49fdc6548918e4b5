from enum import Enum
from typing import TypedDict, Optional, Any


class Mode(str, Enum):
    TREE = "tree"
    AI = "ai"


# option offered with every AI reply; selecting it restarts the guided flow
BACK_TO_TREE = "back_to_tree"
BACK_TO_TREE_OPTION = {
    "text": "Return to guided conversation",
    "value": BACK_TO_TREE,
    "action": "switch_mode",
    "mode": Mode.TREE.value,
}


class TurnState(TypedDict, total=False):
    # request
    mode: Mode
    current_node_id: Optional[str]
    user_choice: Optional[str]
    message: Optional[str]

    # "role: content" lines of the last few messages (AI mode)
    history: str

    # outputs
    reply: str
    options: list[dict[str, Any]]
    next_node_id: Optional[str]
    result_mode: Mode
    message_type: str           # decision_tree|text
    trace: list[dict]
