"""
SnipVault Backend — Snippet SQLAlchemy Models
===============================================

What:  ORM models for the `snippets` table and its ordered `snippet_tags` child.
Why:   Maps Python objects to database rows; Alembic reads these for migrations.
Who:   Used by the query builder and SnippetService; created by SnippetService.

Table Design Rationale:
    - UUID primary key: non-sequential, so ids cannot be enumerated
    - owner_id: opaque identity-provider subject; every visibility and
      ownership check is a predicate on this column
    - language / tags: stored lower-case so equality is case-insensitive
    - tags live in their own table with a position column, which keeps their
      order, allows duplicates and lets "any of these tags" run as an indexed
      EXISTS subquery on any SQL backend
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Snippet(Base):
    """
    A stored unit of code with metadata.

    Query Patterns:
        - "my snippets, newest first": WHERE owner_id = :me ORDER BY created_at DESC
          → idx_snippets_owner_created
        - public feed: WHERE is_public ORDER BY created_at DESC
          → idx_snippets_public_created
        - language filter: WHERE language = :lang → idx_snippets_owner_language
    """

    __tablename__ = "snippets"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    owner_id: Mapped[str] = mapped_column(String(255), nullable=False)

    # Display only; not authoritative
    owner_email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)

    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    language: Mapped[str] = mapped_column(String(50), nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    tag_entries: Mapped[List["SnippetTag"]] = relationship(
        back_populates="snippet",
        order_by="SnippetTag.position",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_snippets_owner_created", "owner_id", created_at.desc()),
        Index("idx_snippets_owner_title", "owner_id", "title"),
        Index("idx_snippets_owner_language", "owner_id", "language"),
        Index("idx_snippets_public_created", "is_public", created_at.desc()),
        Index("idx_snippets_language", "language"),
        Index("idx_snippets_title", "title"),
    )

    @property
    def tags(self) -> List[str]:
        return [entry.tag for entry in self.tag_entries]

    @tags.setter
    def tags(self, values: List[str]) -> None:
        self.tag_entries = [
            SnippetTag(tag=value, position=position) for position, value in enumerate(values)
        ]

    def __repr__(self) -> str:
        return (
            f"<Snippet(id={self.id}, owner_id='{self.owner_id}', "
            f"language='{self.language}', is_public={self.is_public})>"
        )


class SnippetTag(Base):
    """One tag of one snippet, at a fixed position in that snippet's tag list."""

    __tablename__ = "snippet_tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snippet_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("snippets.id", ondelete="CASCADE"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    tag: Mapped[str] = mapped_column(String(100), nullable=False)

    snippet: Mapped[Snippet] = relationship(back_populates="tag_entries")

    __table_args__ = (
        Index("idx_snippet_tags_tag", "tag"),
        Index("idx_snippet_tags_snippet_position", "snippet_id", "position"),
    )

    def __repr__(self) -> str:
        return f"<SnippetTag(snippet_id={self.snippet_id}, position={self.position}, tag='{self.tag}')>"
