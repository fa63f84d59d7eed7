"""
Portfolio aggregate: portfolio row, its experiences, projects and contact messages.
"""
import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from buildfolio.database.connection import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Portfolio(Base):
    __tablename__ = "portfolios"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    tagline: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    job_title: Mapped[str] = mapped_column(String(100), nullable=False)
    location: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    bio: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Stored lowercased; uniqueness is case-insensitive, see uq_portfolios_email_lower
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    profile_photo_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    linkedin_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    github_username: Mapped[str | None] = mapped_column(String(50), nullable=True)
    resume_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    availability_status: Mapped[str] = mapped_column(
        String(20), default="open_fulltime", nullable=False
    )
    open_to_work: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # [{name: str, category: str}]
    skills: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    template: Mapped[str] = mapped_column(String(20), default="minimal", nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    # Only update_portfolio touches this; view pings must not
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    experiences = relationship(
        "Experience",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="Experience.order_index",
        passive_deletes=True,
    )
    projects = relationship(
        "Project",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        order_by="Project.order_index",
        passive_deletes=True,
    )
    contact_messages = relationship(
        "ContactMessage",
        back_populates="portfolio",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


# One portfolio per email, whatever the case
Index("uq_portfolios_email_lower", func.lower(Portfolio.email), unique=True)


class Experience(Base):
    __tablename__ = "experiences"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    company: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    role: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    location: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    start_date: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    end_date: Mapped[str] = mapped_column(String(50), default="", nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolio = relationship("Portfolio", back_populates="experiences")


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    impact_stat: Mapped[str | None] = mapped_column(String(100), nullable=True)
    cover_image_url: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    carousel_images: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    tech_stack: Mapped[list] = mapped_column(JSONType, default=list, nullable=False)
    github_url: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    demo_url: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    # At most one per portfolio; kept by the form and write path, not the schema
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolio = relationship("Portfolio", back_populates="projects")


class ContactMessage(Base):
    __tablename__ = "contact_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    portfolio_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("portfolios.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender_name: Mapped[str] = mapped_column(String(100), nullable=False)
    sender_email: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    portfolio = relationship("Portfolio", back_populates="contact_messages")
