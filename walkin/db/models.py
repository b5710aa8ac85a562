"""SQLModel table definitions for the walk-in queue data layer."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
    text,
)
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class QueueTable(SQLModel, table=True):
    """Independently numbered waiting lines and their persisted counters."""

    __tablename__ = "queues"
    __table_args__ = (CheckConstraint("last_number >= 0", name="ck_queues_last_number"),)

    id: str = Field(sa_column=Column(String(64), primary_key=True))
    name: str = Field(sa_column=Column(String(255), nullable=False))
    last_number: int = Field(default=0, sa_column=Column(Integer, nullable=False, server_default="0"))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Tickets issued to arriving parties."""

    __tablename__ = "tickets"
    __table_args__ = (
        UniqueConstraint("queue_id", "number", name="uq_tickets_queue_number"),
        CheckConstraint("number >= 1", name="ck_tickets_number"),
        CheckConstraint("group_size >= 1", name="ck_tickets_group_size"),
        CheckConstraint("status IN ('waiting', 'called', 'completed')", name="ck_tickets_status"),
        Index(
            "ix_tickets_waiting_by_number",
            "queue_id",
            "number",
            postgresql_where=text("status = 'waiting'"),
        ),
    )

    id: uuid.UUID = Field(default_factory=uuid.uuid4, sa_column=Column(Uuid, primary_key=True))
    queue_id: str = Field(
        sa_column=Column(String(64), ForeignKey("queues.id", ondelete="RESTRICT"), nullable=False)
    )
    number: int = Field(sa_column=Column(Integer, nullable=False))
    group_size: int = Field(sa_column=Column(Integer, nullable=False))
    status: str = Field(sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
