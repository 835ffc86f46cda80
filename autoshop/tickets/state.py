from __future__ import annotations

from enum import Enum


class TicketStatus(str, Enum):
    """Supported states for a repair ticket's lifecycle."""

    PENDING_ADMIN_REVIEW = "pending-admin-review"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in-progress"
    RETURN_VISIT_REQUIRED = "return-visit-required"
    RESCHEDULED_AWAITING_VEHICLE = "rescheduled-awaiting-vehicle"
    WORK_COMPLETED = "work-completed"
    INVOICE_GENERATED = "invoice-generated"
    CLOSED_PAID = "closed-paid"


class TicketStateMachine:
    """Validate caller-requested ticket lifecycle transitions.

    Engine-driven transitions (assignment, intake, reschedule) are applied by
    the service directly; this table only guards explicit status updates
    coming from the work-order and admin screens.
    """

    _TRANSITIONS: dict[TicketStatus, set[TicketStatus]] = {
        TicketStatus.PENDING_ADMIN_REVIEW: {TicketStatus.ASSIGNED},
        TicketStatus.ASSIGNED: {
            TicketStatus.IN_PROGRESS,
            TicketStatus.RETURN_VISIT_REQUIRED,
            TicketStatus.RESCHEDULED_AWAITING_VEHICLE,
        },
        TicketStatus.IN_PROGRESS: {
            TicketStatus.WORK_COMPLETED,
            TicketStatus.RETURN_VISIT_REQUIRED,
            TicketStatus.RESCHEDULED_AWAITING_VEHICLE,
        },
        TicketStatus.RETURN_VISIT_REQUIRED: {
            TicketStatus.RESCHEDULED_AWAITING_VEHICLE,
            TicketStatus.IN_PROGRESS,
        },
        TicketStatus.RESCHEDULED_AWAITING_VEHICLE: {
            TicketStatus.IN_PROGRESS,
            TicketStatus.RETURN_VISIT_REQUIRED,
        },
        TicketStatus.WORK_COMPLETED: {TicketStatus.INVOICE_GENERATED},
        TicketStatus.INVOICE_GENERATED: {TicketStatus.CLOSED_PAID},
        TicketStatus.CLOSED_PAID: set(),
    }

    _TERMINAL: frozenset[TicketStatus] = frozenset({TicketStatus.CLOSED_PAID})

    @classmethod
    def initial_state(cls) -> TicketStatus:
        return TicketStatus.PENDING_ADMIN_REVIEW

    @classmethod
    def is_terminal(cls, status: TicketStatus) -> bool:
        return status in cls._TERMINAL

    @classmethod
    def allowed_targets(cls, current: TicketStatus) -> set[TicketStatus]:
        return set(cls._TRANSITIONS.get(current, set()))

    @classmethod
    def can_transition(cls, current: TicketStatus, new: TicketStatus) -> bool:
        if current == new:
            return True
        return new in cls._TRANSITIONS.get(current, set())

    @classmethod
    def assert_transition(cls, current: TicketStatus, new: TicketStatus) -> None:
        if not cls.can_transition(current, new):
            raise ValueError(f"Invalid ticket status transition: {current.value} -> {new.value}")
