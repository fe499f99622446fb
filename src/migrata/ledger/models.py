"""SQLAlchemy ORM models for migrata's bookkeeping tables.

Both tables live in the target database next to the schema they track.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    """Get current UTC timestamp."""
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all migrata models."""

    pass


class AppliedRecord(Base):
    """One append-only ledger row.

    A change-set can have several rows (reruns, rollbacks); the one with the
    highest ``order_executed`` is its current state.
    """

    __tablename__ = "migrata_changelog"

    order_executed: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    change_set_id: Mapped[str] = mapped_column(String(255), nullable=False)
    author: Mapped[str] = mapped_column(String(255), nullable=False)
    filename: Mapped[str] = mapped_column(String(1024), nullable=False)
    checksum: Mapped[str] = mapped_column(String(80), nullable=False)
    exec_type: Mapped[str] = mapped_column(String(20), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    contexts: Mapped[str | None] = mapped_column(String(255), nullable=True)
    deployment_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    __table_args__ = (Index("ix_migrata_changelog_identity", "author", "change_set_id"),)


class LockRecord(Base):
    """Single-row lock guarding update and rollback runs."""

    __tablename__ = "migrata_changelog_lock"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
