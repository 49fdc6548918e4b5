# portfolio_chat/llm/providers.py
from __future__ import annotations

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI, OpenAIEmbeddings

from portfolio_chat.errors import ProviderUnavailable

logger = logging.getLogger(__name__)

MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
EMBEDDING_MODEL = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")

KNOWN_EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class ChatProvider(ABC):
    @abstractmethod
    def complete(self, system: str, user: str) -> str:
        ...


class EmbeddingProvider(ABC):
    # expected vector length; None means "don't check"
    dimensions: Optional[int] = None

    @abstractmethod
    def embed(self, text: str) -> List[float]:
        ...


class OpenAIChatProvider(ChatProvider):
    def __init__(self, model: str = MODEL, temperature: float = 0.7, max_tokens: int = 500):
        self._llm = ChatOpenAI(model=model, temperature=temperature, max_tokens=max_tokens)

    def complete(self, system: str, user: str) -> str:
        try:
            resp = self._llm.invoke([SystemMessage(content=system), HumanMessage(content=user)])
        except Exception as e:
            raise ProviderUnavailable(f"Chat completion failed: {e}") from e
        return (resp.content or "").strip() if isinstance(resp.content, str) else ""


class OpenAIEmbeddingProvider(EmbeddingProvider):
    def __init__(self, model: str = EMBEDDING_MODEL):
        self._embeddings = OpenAIEmbeddings(model=model)
        self.dimensions = KNOWN_EMBEDDING_DIMENSIONS.get(model)

    def embed(self, text: str) -> List[float]:
        try:
            return self._embeddings.embed_query(text.replace("\n", " "))
        except Exception as e:
            raise ProviderUnavailable(f"Embedding failed: {e}") from e


def generate_embedding(embedder: Optional[EmbeddingProvider], text: str) -> List[float]:
    """
    Embed `text` with whatever provider is configured. Every failure, including
    a missing provider, comes out as ProviderUnavailable.
    """
    if embedder is None:
        raise ProviderUnavailable("No embedding provider configured")
    try:
        return embedder.embed(text)
    except ProviderUnavailable:
        raise
    except Exception as e:
        raise ProviderUnavailable(f"Embedding failed: {e}") from e


# ---------------------------
# Factories (None when OPENAI_API_KEY is unset)
# ---------------------------
def build_chat_provider() -> Optional[ChatProvider]:
    if not os.getenv("OPENAI_API_KEY"):
        logger.warning("OPENAI_API_KEY not set; AI answers will use the retrieval-only fallback")
        return None
    return OpenAIChatProvider(
        temperature=float(os.getenv("RAG_TEMPERATURE", "0.7")),
        max_tokens=int(os.getenv("RAG_MAX_TOKENS", "500")),
    )


def build_embedding_provider() -> Optional[EmbeddingProvider]:
    if not os.getenv("OPENAI_API_KEY"):
        return None
    return OpenAIEmbeddingProvider()
