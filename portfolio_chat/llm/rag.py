# portfolio_chat/llm/rag.py
import logging
import os
from typing import List, Optional

from portfolio_chat.knowledge.base import KnowledgeBase
from portfolio_chat.llm.providers import ChatProvider, EmbeddingProvider, generate_embedding
from portfolio_chat.models import KnowledgeEntry

logger = logging.getLogger(__name__)

TOP_K = int(os.getenv("RAG_TOP_K", "5"))

SYSTEM_PROMPT = """
You are a helpful assistant representing the owner of a portfolio website.
You have access to information about their projects, skills, writing and experience.
Use the context below to answer accurately and conversationally.

Context information:
{snippets}

Recent conversation:
{history}

Guidelines:
- Be conversational and friendly
- Use specific details from the context when relevant
- Stay on professional topics: projects, technical skills, experience, the blog
- If the context doesn't cover the question, say you don't know and suggest
  exploring the projects or blog sections, or getting in touch directly
- Keep answers concise but informative
"""

EMPTY_COMPLETION_REPLY = "I apologize, but I was unable to generate a response at this time."

UNAVAILABLE_NOTICE = (
    "Please note: AI responses are currently unavailable. For more detail, explore the "
    "projects section or get in touch directly."
)

DEFLECTION_REPLY = (
    "I don't have specific information about that right now. Please explore the projects "
    "and blog sections for more details, or feel free to get in touch directly."
)


def _format_snippets(docs: List[KnowledgeEntry]) -> str:
    return "\n\n".join(f"{d.title}: {d.content}" for d in docs)


class ResponseGenerator:
    """
    Free-form answers with three levels of degradation:
      1) full RAG: retrieved snippets + chat completion
      2) retrieval only: the top 1-2 snippets quoted, with an "AI unavailable" notice
      3) deflection: nothing retrieved, point the visitor at the site
    answer() never raises.
    """

    def __init__(
        self,
        knowledge: KnowledgeBase,
        chat: Optional[ChatProvider] = None,
        embedder: Optional[EmbeddingProvider] = None,
        top_k: int = TOP_K,
    ):
        self.knowledge = knowledge
        self.chat = chat
        self.embedder = embedder
        self.top_k = top_k

    def generate_embedding(self, text: str) -> List[float]:
        return generate_embedding(self.embedder, text)

    def _retrieve(self, query: str) -> List[KnowledgeEntry]:
        try:
            return self.knowledge.search(query, limit=self.top_k)
        except Exception:
            logger.exception("Knowledge base search failed for %r", query)
            return []

    def answer(self, query: str, context: str = "") -> str:
        docs = self._retrieve(query)

        if self.chat is not None:
            system = SYSTEM_PROMPT.format(
                snippets=_format_snippets(docs) or "(no matching content)",
                history=context or "(none)",
            )
            try:
                reply = self.chat.complete(system, query)
            except Exception:
                logger.exception("Chat provider failed; using retrieval-only reply")
            else:
                return reply or EMPTY_COMPLETION_REPLY

        return self.fallback_answer(docs)

    @staticmethod
    def fallback_answer(docs: List[KnowledgeEntry]) -> str:
        if not docs:
            return DEFLECTION_REPLY
        return (
            "Based on the available information:\n\n"
            f"{_format_snippets(docs[:2])}\n\n"
            f"{UNAVAILABLE_NOTICE}"
        )
