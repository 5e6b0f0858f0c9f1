"""
Repository model - Git repositories cached per organization/project.

Rows are written only by the sync orchestrator and deleted by a scoped
cache clear.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import BigInteger, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base


class Repository(Base):
    """A Git repository in an Azure DevOps project."""

    __tablename__ = "repositories"
    __table_args__ = (
        Index("idx_repositories_scope", "organization", "project_name"),
        Index("idx_repositories_last_updated", "last_updated"),
    )

    # Remote-assigned GUID
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization: Mapped[str] = mapped_column(String(255), nullable=False)

    # Metadata
    default_branch: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    size: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    web_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timestamps
    created_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
