from portfolio_chat.knowledge.base import KnowledgeBase, SearchBackend, extract_keywords
from portfolio_chat.knowledge.sources import (
    MANUAL_ENTRIES,
    ContentSource,
    PublishedContentSource,
    SourceDocument,
)

__all__ = [
    "KnowledgeBase",
    "SearchBackend",
    "extract_keywords",
    "MANUAL_ENTRIES",
    "ContentSource",
    "PublishedContentSource",
    "SourceDocument",
]
