"""SQLAlchemy ORM models."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.sql import func

JSONType = JSON().with_variant(JSONB(), "postgresql")

JOB_TYPE_CLIENT = "client"
JOB_TYPE_NICHE = "niche"

JOB_STATUS_LENGTH = 50
SIGNAL_TYPE_LENGTH = 50
SIGNAL_TITLE_LENGTH = 500
SIGNAL_SOURCE_URL_LENGTH = 2000
SIGNAL_SOURCE_NAME_LENGTH = 255


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class Client(Base):
    """Company monitored for buying signals."""

    __tablename__ = "clients"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    domain: Mapped[str | None] = mapped_column(String(255))
    description: Mapped[str | None] = mapped_column(Text)
    industry: Mapped[str | None] = mapped_column(String(255))
    linkedin_url: Mapped[str | None] = mapped_column(String(1000))
    twitter_url: Mapped[str | None] = mapped_column(String(1000))
    facebook_url: Mapped[str | None] = mapped_column(String(1000))
    instagram_url: Mapped[str | None] = mapped_column(String(1000))
    custom_urls: Mapped[list[str]] = mapped_column(JSONType, default=list)
    keywords: Mapped[list[str]] = mapped_column(JSONType, default=list)
    monitor_signals: Mapped[list[str]] = mapped_column(JSONType, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    cron_job_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    signals: Mapped[list[Signal]] = relationship(back_populates="client", cascade="all, delete-orphan")


class Niche(Base):
    """Content topic tracked for trending discussions."""

    __tablename__ = "niches"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    keywords: Mapped[list[str]] = mapped_column(JSONType, default=list)
    sources: Mapped[list[str]] = mapped_column(JSONType, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    cron_job_id: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    signals: Mapped[list[Signal]] = relationship(back_populates="niche", cascade="all, delete-orphan")


class MonitoringJob(Base):
    """Maps a remote gateway cron job to the tenant entity it monitors."""

    __tablename__ = "monitoring_jobs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False, index=True)
    cron_job_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    job_type: Mapped[str] = mapped_column(String(20), nullable=False)  # client, niche
    target_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    schedule: Mapped[str] = mapped_column(String(100), nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_status: Mapped[str | None] = mapped_column(String(JOB_STATUS_LENGTH))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (CheckConstraint("job_type IN ('client', 'niche')", name="ck_monitoring_jobs_job_type"),)


class Signal(Base):
    """Normalized unit of detected activity extracted from an agent run."""

    __tablename__ = "signals"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(Uuid, nullable=False)
    client_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("clients.id", ondelete="CASCADE"), index=True)
    niche_id: Mapped[UUID | None] = mapped_column(Uuid, ForeignKey("niches.id", ondelete="CASCADE"), index=True)
    type: Mapped[str] = mapped_column(String(SIGNAL_TYPE_LENGTH), nullable=False)
    title: Mapped[str] = mapped_column(String(SIGNAL_TITLE_LENGTH), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_url: Mapped[str | None] = mapped_column(String(SIGNAL_SOURCE_URL_LENGTH))
    source_name: Mapped[str | None] = mapped_column(String(SIGNAL_SOURCE_NAME_LENGTH))
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    raw_data: Mapped[dict[str, Any] | None] = mapped_column(JSONType)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    client: Mapped[Client | None] = relationship(back_populates="signals")
    niche: Mapped[Niche | None] = relationship(back_populates="signals")

    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (niche_id IS NULL)",
            name="ck_signals_single_owner",
        ),
        CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_signals_confidence_range"),
        Index("ix_signals_tenant_detected_at", "tenant_id", "detected_at"),
    )
