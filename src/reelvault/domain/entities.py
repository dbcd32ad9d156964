"""
Domain entities for ReelVault.

Catalog records for videos and comics. Both tables still carry the legacy
column names older imports used (``title``, ``source_link``,
``source_folder_link``); ``reelvault.catalog.records`` is the only place that
reads them.
"""

from __future__ import annotations

import uuid as uuid_module
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy import DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..infra.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Video(Base):
    """A playable video stored at a provider link."""

    __tablename__ = "videos"

    id: Mapped[uuid_module.UUID] = mapped_column(
        sa.Uuid(as_uuid=True), primary_key=True, default=uuid_module.uuid4
    )
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    link: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Legacy schema fields
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    thumbnail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    duration: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # seconds
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    __table_args__ = (Index("ix_videos_created_at", "created_at"),)

    def __repr__(self) -> str:
        return f"<Video(id={self.id}, name={self.name or self.title})>"


class Comic(Base):
    """A comic whose pages are the images inside a provider folder."""

    __tablename__ = "comics"

    id: Mapped[uuid_module.UUID] = mapped_column(
        sa.Uuid(as_uuid=True), primary_key=True, default=uuid_module.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    folder_link: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Legacy schema fields
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    source_folder_link: Mapped[str | None] = mapped_column(Text, nullable=True)

    thumbnail: Mapped[str] = mapped_column(Text, nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<Comic(id={self.id}, name={self.name})>"
