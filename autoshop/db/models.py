"""SQLModel table definitions for the ticket store."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Column, DateTime, ForeignKey, Integer, JSON, String
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class TicketTable(SQLModel, table=True):
    """One row per ticket; the full record lives in ``document``."""

    __tablename__ = "tickets"

    id: str = Field(primary_key=True, index=True)
    status: str = Field(sa_column=Column(String(50), nullable=False, index=True))
    source: str = Field(sa_column=Column(String(20), nullable=False))
    customer_email: str = Field(default="", sa_column=Column(String(255), nullable=False, index=True))
    document: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
    updated_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketMechanicTable(SQLModel, table=True):
    """Assignment index used to answer "tickets assigned to X" queries."""

    __tablename__ = "ticket_mechanics"

    ticket_id: str = Field(
        sa_column=Column(String(64), ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
    )
    mechanic_id: str = Field(sa_column=Column(String(255), primary_key=True, index=True))
    position: int = Field(default=0, sa_column=Column(Integer, nullable=False))
