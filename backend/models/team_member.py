"""
Team Member model - users of the Azure DevOps organization.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from models.database import Base


class TeamMember(Base):
    """A member of an organization, cached per project."""

    __tablename__ = "team_members"
    __table_args__ = (
        Index("idx_team_members_scope", "organization", "project_name"),
    )

    # "{organization}:{project}:{graph descriptor}"
    id: Mapped[str] = mapped_column(String(512), primary_key=True)
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    unique_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_name: Mapped[str] = mapped_column(String(255), nullable=False)
    organization: Mapped[str] = mapped_column(String(255), nullable=False)

    last_updated: Mapped[Optional[datetime]] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=True
    )
