"""Proposal ORM model."""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Float, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from policymap.models.base import Base, IdMixin


class ProposalRow(Base, IdMixin):
    """One healthcare policy proposal in the remote table."""

    __tablename__ = "proposals"

    source_id: Mapped[str | None] = mapped_column(String(64), index=True, nullable=True)
    slug: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    title: Mapped[str] = mapped_column(String(512), default="", nullable=False)
    city: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    state: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    country: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    background: Mapped[str] = mapped_column(Text, default="", nullable=False)
    policy: Mapped[str] = mapped_column(Text, default="", nullable=False)
    stakeholders: Mapped[str] = mapped_column(Text, default="", nullable=False)
    costs: Mapped[str] = mapped_column(Text, default="", nullable=False)
    metrics: Mapped[str] = mapped_column(Text, default="", nullable=False)
    timeline: Mapped[str] = mapped_column(Text, default="", nullable=False)
    proposal_text: Mapped[str] = mapped_column(Text, default="", nullable=False)
    tags_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    lat: Mapped[float | None] = mapped_column(Float, nullable=True)
    lng: Mapped[float | None] = mapped_column(Float, nullable=True)
    full_name: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    institution: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    image: Mapped[str] = mapped_column(String(1024), default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
