"""Shared fixtures: a throwaway SQLite database, a small tree, fake providers."""

from typing import List

import pytest
from sqlalchemy import func, select

from portfolio_chat import init_db
from portfolio_chat.db import make_engine, make_session_factory
from portfolio_chat.errors import ProviderUnavailable
from portfolio_chat.knowledge import KnowledgeBase
from portfolio_chat.llm.providers import ChatProvider, EmbeddingProvider
from portfolio_chat.llm.rag import ResponseGenerator
from portfolio_chat.orchestrator import ChatOrchestrator
from portfolio_chat.tree import DecisionTreeEngine, load_tree, parse_tree

SMALL_TREE = {
    "id": "welcome",
    "message": "Welcome! Pick one.",
    "type": "multiple_choice",
    "options": [
        {"text": "About", "value": "about", "nextId": "about"},
        {"text": "Ask", "value": "ask", "nextId": "ai_chat"},
        {"text": "Broken", "value": "broken", "nextId": "missing_node"},
        {"text": "Dup first", "value": "dup", "nextId": "about"},
        {"text": "Dup second", "value": "dup", "nextId": "contact"},
    ],
    "nodes": {
        "about": {
            "id": "about",
            "message": "About me.",
            "type": "multiple_choice",
            "options": [
                {"text": "Contact", "value": "contact", "nextId": "contact"},
                {"text": "Back", "value": "back", "nextId": "welcome"},
            ],
        },
        "contact": {
            "id": "contact",
            "message": "Contact me.",
            "type": "multiple_choice",
            "options": [{"text": "Back", "value": "back", "nextId": "welcome"}],
        },
        "ai_chat": {
            "id": "ai_chat",
            "message": "Ask away.",
            "type": "ai_handoff",
            "options": [],
        },
    },
}


# -- Fake providers ----------------------------------------------------------


class FakeChat(ChatProvider):
    def __init__(self, reply: str = "Generated answer.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: List[tuple] = []

    def complete(self, system: str, user: str) -> str:
        self.calls.append((system, user))
        if self.fail:
            raise ProviderUnavailable("chat is down")
        return self.reply


class FakeEmbedder(EmbeddingProvider):
    """Three axes: python / design / cloud word counts (plus a small bias)."""

    AXES = ("python", "design", "cloud")
    dimensions = 3

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: List[str] = []

    def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if self.fail:
            raise ProviderUnavailable("embeddings are down")
        low = text.lower()
        return [low.count(w) + 0.01 for w in self.AXES]


class BrokenEmbedder(FakeEmbedder):
    """Fails the way a raw client does: a plain exception, not ProviderUnavailable."""

    def embed(self, text: str) -> List[float]:
        if self.fail:
            self.calls.append(text)
            raise RuntimeError("connection reset")
        return super().embed(text)


# -- Fixtures ----------------------------------------------------------------


@pytest.fixture(autouse=True)
def _no_openai(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.delenv("KB_SEARCH_BACKEND", raising=False)
    monkeypatch.delenv("CHAT_UNKNOWN_CONVERSATION", raising=False)


@pytest.fixture
def session_factory(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(engine)
    yield make_session_factory(engine)
    engine.dispose()


@pytest.fixture
def count_rows(session_factory):
    def _count(model) -> int:
        with session_factory() as db:
            return db.scalar(select(func.count()).select_from(model))

    return _count


@pytest.fixture
def small_tree():
    return parse_tree(SMALL_TREE)


@pytest.fixture
def small_engine(small_tree):
    return DecisionTreeEngine(small_tree)


@pytest.fixture
def site_engine():
    return DecisionTreeEngine(load_tree())


@pytest.fixture
def knowledge(session_factory):
    return KnowledgeBase(session_factory, backend="substring")


@pytest.fixture
def generator(knowledge):
    return ResponseGenerator(knowledge)


@pytest.fixture
def orchestrator(session_factory, site_engine, generator):
    return ChatOrchestrator(session_factory, site_engine, generator, unknown_conversation="reject")
