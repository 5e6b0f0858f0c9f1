"""
Commit model - commits on cached repositories.

Scoped indirectly through ``repository_id``; the primary key is
``{repository_id}-{commit_id}`` so the same SHA in two repositories never
collides.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base, JSONVariant


class Commit(Base):
    """A commit on a cached repository."""

    __tablename__ = "commits"
    __table_args__ = (
        Index("idx_commits_repository", "repository_id"),
        Index("idx_commits_author_date", "author_date"),
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    commit_id: Mapped[str] = mapped_column(String(40), nullable=False)
    repository_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Author / committer (may differ in rebases, cherry-picks, etc.)
    author_name: Mapped[str] = mapped_column(String(255), nullable=False)
    author_email: Mapped[str] = mapped_column(String(255), nullable=False)
    author_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    committer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    committer_email: Mapped[str] = mapped_column(String(255), nullable=False)
    committer_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    comment: Mapped[str] = mapped_column(Text, nullable=False)
    comment_truncated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # {"add": n, "edit": n, "delete": n}
    change_counts: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONVariant, nullable=True)

    # Links
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    remote_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
