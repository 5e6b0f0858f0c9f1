"""
Work Item model - user stories, tasks, bugs from the project's backlog.

Work items carry a project name but no organization column, so they are
scoped by project name alone.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Float, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base, JSONVariant


class WorkItem(Base):
    """A work item from Azure Boards."""

    __tablename__ = "work_items"
    __table_args__ = (
        Index("idx_work_items_project", "project_name"),
        Index("idx_work_items_iteration", "project_name", "iteration_path"),
        Index("idx_work_items_created_date", "created_date"),
    )

    # Remote-assigned integer id
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    rev: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    area_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    iteration_path: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)

    # Classification
    work_item_type: Mapped[str] = mapped_column(String(100), nullable=False)
    state: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Content
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    acceptance_criteria: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # People
    assigned_to_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_to_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    assigned_to_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_by_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Planning
    story_points: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    priority: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    severity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Ordered list of tag strings
    tags: Mapped[Optional[list[str]]] = mapped_column(JSONVariant, nullable=True)

    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Dates
    created_date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    changed_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
