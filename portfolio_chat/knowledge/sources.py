"""
Content feeding the knowledge base on rebuild: published projects, published
blog posts, and a fixed set of manual facts.
"""
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select

from portfolio_chat.models import BlogPost, Project


@dataclass(frozen=True)
class SourceDocument:
    title: str
    content: str
    source: str  # "project" | "blog" | "manual"
    source_id: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class ContentSource(ABC):
    @abstractmethod
    def documents(self) -> Iterable[SourceDocument]:
        ...


def _join(*parts: Optional[str]) -> str:
    return " ".join(p.strip() for p in parts if p and p.strip())


def project_document(project: Project) -> SourceDocument:
    meta_txt = json.dumps(project.meta, ensure_ascii=False) if project.meta else None
    return SourceDocument(
        title=project.title,
        content=_join(project.description, meta_txt) or project.title,
        source="project",
        source_id=project.id,
        meta={"url": f"/projects/{project.id}"},
    )


def blog_document(post: BlogPost) -> SourceDocument:
    return SourceDocument(
        title=post.title,
        content=_join(post.excerpt, post.content) or post.title,
        source="blog",
        source_id=post.id,
        meta={"url": f"/blog/{post.slug}"},
    )


class PublishedContentSource(ContentSource):
    """Reads published projects and blog posts straight from the site database."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    def documents(self) -> List[SourceDocument]:
        with self.session_factory() as db:
            projects = db.scalars(
                select(Project).where(Project.published.is_(True)).order_by(Project.created_at)
            ).all()
            posts = db.scalars(
                select(BlogPost).where(BlogPost.published.is_(True)).order_by(BlogPost.created_at)
            ).all()
            return [project_document(p) for p in projects] + [blog_document(p) for p in posts]


MANUAL_ENTRIES = (
    SourceDocument(
        title="Technical Skills Overview",
        content=(
            "Full-stack developer working with technologies such as React, Next.js, TypeScript, "
            "Node.js, Python, PostgreSQL and AWS. Experienced in building scalable web applications "
            "with modern development practices including testing, CI/CD and security best practices."
        ),
        source="manual",
        meta={"category": "skills"},
    ),
    SourceDocument(
        title="Development Philosophy",
        content=(
            "Believes in writing clean, maintainable code with comprehensive testing. Focuses on user "
            "experience, performance optimization and accessibility, and enjoys staying current with "
            "modern tools and industry practices."
        ),
        source="manual",
        meta={"category": "approach"},
    ),
    SourceDocument(
        title="Portfolio Website Features",
        content=(
            "This portfolio website showcases projects and blog posts, has an admin area for managing "
            "content and file uploads, and includes this chat assistant, which combines a guided "
            "conversation with AI answers grounded in the site's own content."
        ),
        source="manual",
        meta={"category": "portfolio"},
    ),
)
