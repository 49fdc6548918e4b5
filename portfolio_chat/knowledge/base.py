# portfolio_chat/knowledge/base.py
"""
Knowledge base: the snippets the AI mode answers from.

Two search paths, picked by backend capability:
  - similarity: cosine ranking of stored embeddings against the query embedding.
    Needs KB_SEARCH_BACKEND=similarity AND a configured embedding provider.
  - substring: keyword containment on title/content, newest first.
    Always available; also used whenever the similarity path can't run
    (query not embeddable, nothing stored with an embedding).
"""
from __future__ import annotations

import logging
import os
import re
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import numpy as np
from sqlalchemy import delete, or_, select

from portfolio_chat.errors import KnowledgeBaseError, ProviderUnavailable
from portfolio_chat.knowledge.sources import MANUAL_ENTRIES, ContentSource, SourceDocument
from portfolio_chat.llm.providers import EmbeddingProvider, generate_embedding
from portfolio_chat.models import KnowledgeEntry

logger = logging.getLogger(__name__)

SOURCES = {"project", "blog", "manual"}

STOP_WORDS = {
    "the", "and", "are", "you", "your", "yours", "what", "which", "who", "whom", "how", "why",
    "when", "where", "does", "did", "use", "used", "using", "can", "could", "would", "should",
    "tell", "about", "have", "has", "had", "with", "for", "any", "some", "this", "that", "these",
    "those", "there", "their", "them", "they", "please", "know", "was", "were", "been", "into",
    "from", "our", "out", "get", "got", "like", "more", "most", "just", "also", "its", "it's",
    "all", "not", "but", "too", "very", "much", "many", "work", "works", "worked", "show",
}


class SearchBackend(str, Enum):
    SUBSTRING = "substring"
    SIMILARITY = "similarity"


def extract_keywords(query: str) -> List[str]:
    """
    Lowercased search terms: stop words and tokens shorter than 3 chars are dropped,
    order preserved. A query with no usable terms falls back to the whole trimmed query.
    """
    seen = []
    for tok in re.findall(r"[\w+#.]+", (query or "").lower()):
        tok = tok.strip(".")
        if len(tok) < 3 or tok in STOP_WORDS or tok in seen:
            continue
        seen.append(tok)
    if not seen and (query or "").strip():
        return [query.strip()]
    return seen


class KnowledgeBase:
    def __init__(
        self,
        session_factory,
        embedder: Optional[EmbeddingProvider] = None,
        backend: SearchBackend | str | None = None,
    ):
        self.session_factory = session_factory
        self.embedder = embedder
        self.backend = SearchBackend(backend or os.getenv("KB_SEARCH_BACKEND", SearchBackend.SUBSTRING.value))

    @property
    def supports_similarity(self) -> bool:
        return self.backend is SearchBackend.SIMILARITY and self.embedder is not None

    # ---------------------------
    # Write
    # ---------------------------
    def _embed(self, text: str) -> Optional[List[float]]:
        if self.embedder is None:
            return None
        try:
            vec = generate_embedding(self.embedder, text)
        except ProviderUnavailable as e:
            logger.warning("Embedding failed, storing entry without one: %s", e)
            return None

        expected = getattr(self.embedder, "dimensions", None)
        if expected and len(vec) != expected:
            logger.warning("Embedding has %d dimensions, expected %d; dropping it", len(vec), expected)
            return None
        return [float(x) for x in vec]

    def _build_entry(self, doc: SourceDocument) -> KnowledgeEntry:
        if doc.source not in SOURCES:
            raise ValueError(f"Unknown knowledge source: {doc.source}")
        if not (doc.content or "").strip():
            raise ValueError(f"Knowledge entry {doc.title!r} has empty content")

        return KnowledgeEntry(
            title=doc.title,
            content=doc.content,
            source=doc.source,
            source_id=doc.source_id,
            embedding=self._embed(f"{doc.title} {doc.content}"),
            meta=dict(doc.meta) if doc.meta else None,
        )

    def add(
        self,
        title: str,
        content: str,
        source: str,
        source_id: Optional[str] = None,
        meta: Optional[Dict[str, Any]] = None,
    ) -> int:
        doc = SourceDocument(title=title, content=content, source=source, source_id=source_id, meta=meta or {})
        entry = self._build_entry(doc)
        with self.session_factory() as db:
            db.add(entry)
            db.commit()
            return entry.id

    def rebuild(self, content: Optional[ContentSource] = None, manual: Iterable[SourceDocument] = MANUAL_ENTRIES) -> int:
        """
        Full replacement: re-add published content and the manual facts in place of
        every existing entry.

        Every entry is validated and embedded before the table is touched, and the
        delete and the inserts share one commit. Any failure leaves the old entries
        in place. Returns the number of entries written.
        """
        try:
            docs = list(content.documents()) if content is not None else []
            docs.extend(manual)
            entries = [self._build_entry(doc) for doc in docs]

            with self.session_factory() as db:
                try:
                    db.execute(delete(KnowledgeEntry))
                    db.add_all(entries)
                    db.commit()
                except Exception:
                    db.rollback()
                    raise
        except Exception as e:
            logger.exception("Knowledge base rebuild failed")
            raise KnowledgeBaseError("Failed to populate knowledge base") from e

        logger.info("Knowledge base rebuilt with %d entries", len(entries))
        return len(entries)

    # ---------------------------
    # Read
    # ---------------------------
    def search(self, query: str, limit: int = 5) -> List[KnowledgeEntry]:
        with self.session_factory() as db:
            if self.supports_similarity:
                hits = self._similarity_search(db, query, limit)
                if hits is not None:
                    return hits
            return self._substring_search(db, query, limit)

    def _substring_search(self, db, query: str, limit: int) -> List[KnowledgeEntry]:
        keywords = extract_keywords(query)
        if not keywords:
            return []

        clauses = []
        for kw in keywords:
            clauses.append(KnowledgeEntry.title.icontains(kw, autoescape=True))
            clauses.append(KnowledgeEntry.content.icontains(kw, autoescape=True))

        stmt = (
            select(KnowledgeEntry)
            .where(or_(*clauses))
            .order_by(KnowledgeEntry.created_at.desc(), KnowledgeEntry.id.desc())
            .limit(limit)
        )
        return list(db.scalars(stmt).all())

    def _similarity_search(self, db, query: str, limit: int) -> Optional[List[KnowledgeEntry]]:
        """
        None means "similarity unavailable for this query", so the caller falls back.
        """
        try:
            q = np.asarray(generate_embedding(self.embedder, query), dtype=float)
        except ProviderUnavailable as e:
            logger.warning("Query embedding failed, falling back to substring search: %s", e)
            return None

        candidates = [
            e for e in db.scalars(select(KnowledgeEntry).where(KnowledgeEntry.embedding.is_not(None))).all()
            if e.embedding and len(e.embedding) == len(q)
        ]
        q_norm = np.linalg.norm(q)
        if not candidates or q_norm == 0:
            return None

        matrix = np.asarray([e.embedding for e in candidates], dtype=float)
        norms = np.linalg.norm(matrix, axis=1)
        norms[norms == 0] = np.inf
        scores = (matrix @ q) / (norms * q_norm)

        order = np.argsort(-scores, kind="stable")[:limit]
        return [candidates[i] for i in order]
