from __future__ import annotations


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class TicketValidationError(TicketServiceError):
    """Raised when a request is incomplete or inconsistent."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when attempting to transition to an invalid state."""


class IntakeAlreadyRecordedError(TicketServiceError):
    """Raised when a second pre-service intake is submitted without an override."""


class TicketStorageError(TicketServiceError):
    """Raised when the backing store rejects a write; nothing was committed."""
