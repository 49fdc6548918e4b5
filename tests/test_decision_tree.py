"""Tests for tree loading and the decision tree engine."""

import pytest

from portfolio_chat.tree import ROOT_ID, DecisionTreeEngine, NodeKind, load_tree, parse_tree

from .conftest import SMALL_TREE

# -- Loading -----------------------------------------------------------------


def test_bundled_tree_has_no_dangling_references() -> None:
    tree = load_tree()
    assert tree.dangling_references() == []
    assert tree.root.id == ROOT_ID
    assert any(n.kind is NodeKind.AI_HANDOFF for n in tree.nodes.values())


def test_small_tree_reports_dangling_reference(small_tree) -> None:
    assert small_tree.dangling_references() == [(ROOT_ID, "broken", "missing_node")]


def test_root_is_addressed_as_welcome_whatever_its_configured_id() -> None:
    tree = parse_tree({**SMALL_TREE, "id": "start"})
    assert tree.lookup("welcome") is tree.root
    assert tree.lookup("start") is None


def test_lookup_unknown_or_empty_is_none(small_tree) -> None:
    assert small_tree.lookup("nope") is None
    assert small_tree.lookup("") is None
    assert small_tree.lookup(None) is None


def test_tree_is_immutable(small_tree) -> None:
    with pytest.raises(TypeError):
        small_tree.nodes["about"] = small_tree.root


def test_unknown_node_type_rejected() -> None:
    with pytest.raises(ValueError, match="unknown type"):
        parse_tree({"id": "welcome", "message": "hi", "type": "free_text", "options": []})


def test_option_missing_next_id_rejected() -> None:
    data = {"id": "welcome", "message": "hi", "type": "multiple_choice",
            "options": [{"text": "A", "value": "a"}]}
    with pytest.raises(ValueError, match="nextId"):
        parse_tree(data)


def test_load_tree_from_env_path(tmp_path, monkeypatch) -> None:
    import json

    path = tmp_path / "tree.json"
    path.write_text(json.dumps(SMALL_TREE), encoding="utf-8")
    monkeypatch.setenv("CHATBOT_TREE_PATH", str(path))
    assert load_tree().root.message == "Welcome! Pick one."


# -- Navigation --------------------------------------------------------------


def test_starting_node_is_root(small_engine, small_tree) -> None:
    node = small_engine.get_starting_node()
    assert node is small_tree.root
    assert node.id == ROOT_ID


def test_get_node(small_engine) -> None:
    assert small_engine.get_node("about").message == "About me."
    assert small_engine.get_node("welcome").id == ROOT_ID
    assert small_engine.get_node("missing") is None


def test_choice_moves_to_target_node(small_engine, small_tree) -> None:
    resp = small_engine.process_choice("welcome", "about")
    assert resp.message == "About me."
    assert resp.options == small_tree.nodes["about"].options
    assert resp.next_node_id == "about"
    assert resp.handoff_to_ai is False


def test_choice_back_to_welcome(small_engine, small_tree) -> None:
    resp = small_engine.process_choice("about", "back")
    assert resp.message == small_tree.root.message
    assert resp.next_node_id == ROOT_ID


def test_handoff_node(small_engine) -> None:
    resp = small_engine.process_choice("welcome", "ask")
    assert resp.handoff_to_ai is True
    assert resp.options == ()
    assert resp.next_node_id is None
    assert resp.message == "Ask away."


@pytest.mark.parametrize("node_id", ["welcome", "about", "contact", "ai_chat", "nowhere", ""])
def test_unknown_choice_restarts_at_root(small_engine, small_tree, node_id) -> None:
    resp = small_engine.process_choice(node_id, "non-existent-value")
    assert resp.message == small_tree.root.message
    assert resp.options == small_tree.root.options
    assert resp.next_node_id == ROOT_ID
    assert resp.handoff_to_ai is False


def test_dangling_target_restarts_at_root(small_engine, small_tree) -> None:
    resp = small_engine.process_choice("welcome", "broken")
    assert resp.message == small_tree.root.message
    assert resp.next_node_id == ROOT_ID


def test_duplicate_values_first_listed_wins(small_engine) -> None:
    assert small_engine.process_choice("welcome", "dup").next_node_id == "about"


def test_every_bundled_option_resolves() -> None:
    tree = load_tree()
    engine = DecisionTreeEngine(tree)
    for node in (tree.root, *tree.nodes.values()):
        for opt in node.options:
            resp = engine.process_choice(node.id, opt.value)
            if resp.handoff_to_ai:
                assert tree.lookup(opt.next_id).kind is NodeKind.AI_HANDOFF
            else:
                assert tree.lookup(resp.next_node_id) is not None
                assert resp.next_node_id == opt.next_id


def test_options_serialise_with_next_id(small_tree) -> None:
    assert small_tree.root.options_as_dicts()[0] == {"text": "About", "value": "about", "nextId": "about"}
