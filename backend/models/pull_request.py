"""
Pull Request model - PRs on cached repositories.

The primary key is derived from the repository id and the remote PR number
by the connector; see ``connectors.azure_devops.make_pull_request_id``.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import BigInteger, Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base, JSONVariant


class PullRequest(Base):
    """A pull request on a cached repository."""

    __tablename__ = "pull_requests"
    __table_args__ = (
        Index("idx_pull_requests_repository", "repository_id"),
        Index("idx_pull_requests_status", "status"),
        Index("idx_pull_requests_creation_date", "creation_date"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    repository_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # PR identification
    pull_request_id: Mapped[int] = mapped_column(Integer, nullable=False)
    code_review_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # State: "active", "completed", "abandoned"
    status: Mapped[str] = mapped_column(String(30), nullable=False)
    merge_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    is_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Content
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_ref_name: Mapped[str] = mapped_column(String(512), nullable=False)
    target_ref_name: Mapped[str] = mapped_column(String(512), nullable=False)

    # Author
    created_by_name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_by_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    creation_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Reviewers (ordered, with votes) and linked work items stored as JSON
    reviewers: Mapped[Optional[list[dict[str, Any]]]] = mapped_column(JSONVariant, nullable=True)
    work_item_ids: Mapped[Optional[list[int]]] = mapped_column(JSONVariant, nullable=True)

    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
