"""Database models and utilities."""

from .models import TicketMechanicTable, TicketTable

__all__ = [
    "TicketMechanicTable",
    "TicketTable",
]
