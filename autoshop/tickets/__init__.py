"""Repair ticket domain models and lifecycle engine."""

from .customers import CustomerResolver
from .errors import (
    IntakeAlreadyRecordedError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketServiceError,
    TicketStorageError,
    TicketValidationError,
)
from .identifiers import TicketIdGenerator
from .models import Ticket
from .photos import PhotoNormalizer
from .repository import InMemoryTicketRepository, SqlTicketRepository, TicketFilter, TicketRepository
from .service import TicketService
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "CustomerResolver",
    "InMemoryTicketRepository",
    "IntakeAlreadyRecordedError",
    "InvalidTicketTransitionError",
    "PhotoNormalizer",
    "SqlTicketRepository",
    "Ticket",
    "TicketFilter",
    "TicketIdGenerator",
    "TicketNotFoundError",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStorageError",
    "TicketValidationError",
]
