"""
Sprint model - iterations with a date range.

There is no ``state`` column: past/current/future depends on the
clock, so it is derived from the dates whenever a record is read.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base, JSONVariant


class Sprint(Base):
    """An iteration node that has start and finish dates."""

    __tablename__ = "sprints"
    __table_args__ = (
        Index("idx_sprints_scope", "organization", "project_name"),
        Index("idx_sprints_start_date", "start_date"),
    )

    # Iteration node identifier (GUID)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    path: Mapped[str] = mapped_column(String(512), nullable=False)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization: Mapped[str] = mapped_column(String(255), nullable=False)

    start_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    finish_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    # Raw iteration attributes from the remote tree
    attributes: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONVariant, nullable=True)

    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
