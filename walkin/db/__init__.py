"""Database models and utilities."""

from .models import QueueTable, TicketTable

__all__ = [
    "QueueTable",
    "TicketTable",
]
