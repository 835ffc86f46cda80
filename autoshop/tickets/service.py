from __future__ import annotations

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import AsyncIterator, Callable, Sequence

from autoshop.core.logging import get_tracer

from .customers import CustomerResolver
from .errors import (
    IntakeAlreadyRecordedError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketValidationError,
)
from .identifiers import TicketIdGenerator
from .models import (
    AdditionalFinding,
    MechanicIntake,
    NotificationMethod,
    RescheduleInfo,
    SchedulingPreferences,
    ServiceLine,
    ServiceStatus,
    StatusHistoryEntry,
    Ticket,
    TicketSource,
    utcnow,
)
from .payloads import CustomerIntakePayload, EmployeeIntakePayload, FindingDraft
from .photos import PhotoNormalizer
from .repository import TicketFilter, TicketRepository
from .state import TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

SYSTEM_ACTOR = "system"
ADMIN_ACTOR = "admin"

# States in which the vehicle is no longer being worked on.
_FINISHED_STATES = frozenset(
    {TicketStatus.WORK_COMPLETED, TicketStatus.INVOICE_GENERATED, TicketStatus.CLOSED_PAID}
)

Mutation = Callable[[Ticket, datetime], bool]


class TicketService:
    """Lifecycle engine owning every ticket mutation.

    Each write loads the ticket, mutates a private copy and persists the full
    record; writers to the same ticket are serialized with a per-ticket lock.
    Status changes always append a ``status_history`` entry and every persisted
    change moves ``updated_at`` forward.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        id_generator: TicketIdGenerator | None = None,
        photo_normalizer: PhotoNormalizer | None = None,
        customer_resolver: CustomerResolver | None = None,
        strict_transitions: bool = True,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repository = repository
        self._ids = id_generator or TicketIdGenerator()
        self._photos = photo_normalizer or PhotoNormalizer(clock=clock)
        self._customers = customer_resolver or CustomerResolver(repository, clock=clock)
        self._strict_transitions = strict_transitions
        self._clock = clock
        # ticket id -> (lock, number of callers holding or waiting on it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}
        self._seeded = False

    async def initialize(self) -> None:
        """Seed the id counter from the tickets already in the store."""

        next_value = self._ids.seed(await self._repository.list_ticket_ids())
        self._seeded = True
        logger.debug("Ticket id counter seeded at %s%d", self._ids.prefix, next_value)

    # Intake -----------------------------------------------------------------

    async def create_from_customer_flow(self, payload: CustomerIntakePayload) -> Ticket:
        self._validate_customer_payload(payload)
        await self._ensure_seeded()

        contact = payload.customer_info
        customer = await self._customers.resolve(contact)
        now = self._clock()

        services = [
            ServiceLine(id=selected.id, name=selected.name, description=selected.symptoms, status=ServiceStatus.PENDING)
            for selected in payload.selected_services
        ]
        photos = self._photos.flatten(payload.photos, *(selected.photos for selected in payload.selected_services))
        symptoms = "\n".join(
            f"{selected.name}: {selected.symptoms}" for selected in payload.selected_services if selected.symptoms
        )
        vehicle = payload.vehicle.model_copy(deep=True, update={"customer_id": payload.vehicle.customer_id or customer.id})
        scheduling = payload.scheduling_preferences

        ticket = Ticket(
            id=self._ids.next_id(),
            source=TicketSource.CUSTOMER,
            customer=customer,
            vehicle=vehicle,
            services=services,
            symptoms=symptoms or None,
            description=symptoms or "Service request",
            photos=photos,
            status=TicketStateMachine.initial_state(),
            created_at=now,
            updated_at=now,
            created_by=customer.id,
            scheduling_preferences=SchedulingPreferences(
                pickup_time=scheduling.pickup_time,
                dropoff_date=scheduling.drop_off_date,
                notification_method=contact.notification_preference,
                car_status=scheduling.car_status,
            ),
        )
        created = await self._insert(ticket)
        logger.info("Ticket %s created from customer intake for %s", created.id, customer.email)
        return created

    async def create_from_employee_flow(
        self,
        payload: EmployeeIntakePayload,
        *,
        created_by: str | None = None,
    ) -> Ticket:
        self._validate_employee_payload(payload)
        await self._ensure_seeded()

        now = self._clock()
        ticket = Ticket(
            id=self._ids.next_id(),
            source=TicketSource.EMPLOYEE,
            customer=payload.customer.model_copy(deep=True),
            vehicle=payload.vehicle.model_copy(deep=True),
            services=[service.model_copy(deep=True) for service in payload.selected_services],
            symptoms=payload.symptoms,
            notes=payload.description,
            description=payload.description or payload.symptoms or "Service request",
            photos=self._photos.normalize_many(payload.photos),
            status=TicketStateMachine.initial_state(),
            created_at=now,
            updated_at=now,
            created_by=created_by or payload.customer.id,
            scheduling_preferences=(
                payload.scheduling_preferences.model_copy(deep=True) if payload.scheduling_preferences else None
            ),
        )
        created = await self._insert(ticket)
        logger.info("Ticket %s created from employee intake", created.id)
        return created

    # Queries ----------------------------------------------------------------

    async def get_tickets(
        self,
        *,
        status: TicketStatus | None = None,
        assigned_to: str | None = None,
    ) -> list[Ticket]:
        return await self._repository.list_tickets(TicketFilter(status=status, assigned_to=assigned_to))

    async def get_ticket_by_id(self, ticket_id: str) -> Ticket | None:
        return await self._repository.get_ticket(ticket_id)

    async def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    # Assignment -------------------------------------------------------------

    async def assign_mechanics(
        self,
        ticket_id: str,
        mechanic_ids: Sequence[str],
        *,
        actor: str = ADMIN_ACTOR,
    ) -> Ticket:
        requested = list(dict.fromkeys(mechanic_id.strip() for mechanic_id in mechanic_ids))
        if not requested or not all(requested):
            raise TicketValidationError("At least one non-empty mechanic id is required")

        def mutate(ticket: Ticket, now: datetime) -> bool:
            added = [mechanic_id for mechanic_id in requested if mechanic_id not in ticket.assigned_mechanic_ids]
            ticket.assigned_mechanic_ids.extend(added)
            changed = bool(added)
            if ticket.status == TicketStatus.PENDING_ADMIN_REVIEW:
                changed |= self._set_status(
                    ticket,
                    TicketStatus.ASSIGNED,
                    at=now,
                    actor=actor,
                    note=f"Assigned to {len(requested)} mechanic(s)",
                )
            return changed

        return await self._mutate(ticket_id, mutate)

    async def assign_mechanic(self, ticket_id: str, mechanic_id: str, *, actor: str = ADMIN_ACTOR) -> Ticket:
        """Single-mechanic form kept for older callers; adds to the assignment set."""

        return await self.assign_mechanics(ticket_id, [mechanic_id], actor=actor)

    async def remove_mechanic(self, ticket_id: str, mechanic_id: str, *, actor: str = ADMIN_ACTOR) -> Ticket:
        def mutate(ticket: Ticket, now: datetime) -> bool:
            if mechanic_id not in ticket.assigned_mechanic_ids:
                return False
            ticket.assigned_mechanic_ids = [value for value in ticket.assigned_mechanic_ids if value != mechanic_id]
            if not ticket.assigned_mechanic_ids and ticket.status == TicketStatus.ASSIGNED:
                self._set_status(
                    ticket,
                    TicketStatus.PENDING_ADMIN_REVIEW,
                    at=now,
                    actor=actor,
                    note="All mechanics unassigned",
                )
            return True

        return await self._mutate(ticket_id, mutate)

    # Status -----------------------------------------------------------------

    async def update_ticket_status(
        self,
        ticket_id: str,
        status: TicketStatus | str,
        *,
        actor: str | None = None,
        note: str | None = None,
    ) -> Ticket:
        """Caller-requested transition, checked against the transition table."""

        target = _coerce_status(status)

        def mutate(ticket: Ticket, now: datetime) -> bool:
            current = ticket.status
            if self._strict_transitions and not TicketStateMachine.can_transition(current, target):
                raise InvalidTicketTransitionError(f"Cannot transition {current.value} -> {target.value}")
            if target == TicketStatus.ASSIGNED and not ticket.assigned_mechanic_ids:
                raise InvalidTicketTransitionError(f"Ticket {ticket.id} has no assigned mechanic")
            return self._set_status(
                ticket,
                target,
                at=now,
                actor=actor or ticket.assigned_mechanic_id or SYSTEM_ACTOR,
                note=note or f"Status changed from {current.value} to {target.value}",
            )

        return await self._mutate(ticket_id, mutate)

    async def override_ticket_status(
        self,
        ticket_id: str,
        status: TicketStatus | str,
        *,
        actor: str,
        note: str | None = None,
    ) -> Ticket:
        """Administrative escape hatch that bypasses the transition table."""

        if not actor or not actor.strip():
            raise TicketValidationError("An actor is required for a status override")
        target = _coerce_status(status)

        def mutate(ticket: Ticket, now: datetime) -> bool:
            current = ticket.status
            changed = self._set_status(
                ticket,
                target,
                at=now,
                actor=actor,
                note=note or f"Administrative override from {current.value} to {target.value}",
            )
            if changed:
                logger.warning("Ticket %s status overridden %s -> %s by %s", ticket.id, current.value, target.value, actor)
            return changed

        return await self._mutate(ticket_id, mutate)

    # Work order -------------------------------------------------------------

    async def update_ticket_notes(self, ticket_id: str, notes: str) -> Ticket:
        def mutate(ticket: Ticket, now: datetime) -> bool:
            if ticket.notes == notes:
                return False
            ticket.notes = notes
            return True

        return await self._mutate(ticket_id, mutate)

    async def set_reschedule_info(
        self,
        ticket_id: str,
        info: RescheduleInfo,
        *,
        actor: str | None = None,
    ) -> Ticket:
        stored = info.model_copy(deep=True)

        def mutate(ticket: Ticket, now: datetime) -> bool:
            if TicketStateMachine.is_terminal(ticket.status):
                raise InvalidTicketTransitionError(f"Ticket {ticket.id} is closed and cannot be rescheduled")
            ticket.reschedule_info = stored
            who = actor or stored.requested_by_mechanic_id or SYSTEM_ACTOR
            # A concrete date and time wins over a bare return-visit request.
            if stored.is_scheduled:
                self._set_status(
                    ticket,
                    TicketStatus.RESCHEDULED_AWAITING_VEHICLE,
                    at=now,
                    actor=who,
                    note=f"Return visit scheduled for {stored.scheduled_date} {stored.scheduled_time}",
                )
            elif stored.requested_by_mechanic_id:
                self._set_status(
                    ticket,
                    TicketStatus.RETURN_VISIT_REQUIRED,
                    at=now,
                    actor=who,
                    note=f"Return visit required: {stored.reason}",
                )
            return True

        return await self._mutate(ticket_id, mutate)

    async def set_mechanic_intake(
        self,
        ticket_id: str,
        intake: MechanicIntake,
        *,
        replace: bool = False,
    ) -> Ticket:
        """Record the pre-service inspection; an ``assigned`` ticket moves to ``in-progress``.

        The intake is write-once. ``replace=True`` overwrites an existing
        intake without touching the status. Tickets without a mechanic or
        with finished work are rejected.
        """

        stored = intake.model_copy(deep=True)

        def mutate(ticket: Ticket, now: datetime) -> bool:
            if ticket.mechanic_intake is not None and not replace:
                raise IntakeAlreadyRecordedError(f"Ticket {ticket.id} already has a pre-service intake")
            if ticket.status == TicketStatus.PENDING_ADMIN_REVIEW or ticket.status in _FINISHED_STATES:
                raise InvalidTicketTransitionError(
                    f"Cannot record an intake while ticket {ticket.id} is {ticket.status.value}"
                )
            first_intake = ticket.mechanic_intake is None
            ticket.mechanic_intake = stored
            if first_intake and ticket.status == TicketStatus.ASSIGNED:
                self._set_status(
                    ticket,
                    TicketStatus.IN_PROGRESS,
                    at=now,
                    actor=stored.intake_mechanic_id,
                    note="Pre-service intake completed",
                )
            return True

        return await self._mutate(ticket_id, mutate)

    async def add_additional_finding(self, ticket_id: str, draft: FindingDraft) -> Ticket:
        photos = self._photos.normalize_many(draft.photos)

        def mutate(ticket: Ticket, now: datetime) -> bool:
            finding = AdditionalFinding(
                id=f"finding-{uuid.uuid4().hex[:12]}",
                created_at=now,
                mechanic_id=draft.mechanic_id,
                title=draft.title,
                description=draft.description,
                severity=draft.severity,
                requires_customer_approval=draft.requires_customer_approval,
                status=draft.status,
                photos=photos,
            )
            ticket.additional_findings.append(finding)
            logger.info("Finding %s (%s) added to ticket %s", finding.id, finding.severity.value, ticket.id)
            return True

        return await self._mutate(ticket_id, mutate)

    # Internals --------------------------------------------------------------

    async def _ensure_seeded(self) -> None:
        if not self._seeded:
            await self.initialize()

    async def _insert(self, ticket: Ticket) -> Ticket:
        with tracer.start_as_current_span("ticket.create") as span:
            span.set_attribute("ticket.id", ticket.id)
            span.set_attribute("ticket.source", ticket.source.value)
            return await self._repository.create_ticket(ticket)

    @asynccontextmanager
    async def _ticket_lock(self, ticket_id: str) -> AsyncIterator[None]:
        lock, users = self._locks.get(ticket_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._locks[ticket_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._locks[ticket_id]
            if users > 1:
                self._locks[ticket_id] = (lock, users - 1)
            else:
                del self._locks[ticket_id]

    async def _mutate(self, ticket_id: str, mutation: Mutation) -> Ticket:
        async with self._ticket_lock(ticket_id):
            with tracer.start_as_current_span("ticket.update") as span:
                span.set_attribute("ticket.id", ticket_id)
                ticket = await self._repository.get_ticket(ticket_id)
                if ticket is None:
                    raise TicketNotFoundError(ticket_id)

                now = self._next_timestamp(ticket.updated_at)
                if not mutation(ticket, now):
                    span.set_attribute("ticket.changed", False)
                    return ticket

                ticket.updated_at = now
                updated = await self._repository.replace_ticket(ticket)
                if updated is None:
                    raise TicketNotFoundError(ticket_id)
                span.set_attribute("ticket.changed", True)
                span.set_attribute("ticket.status", updated.status.value)
                return updated

    def _next_timestamp(self, previous: datetime) -> datetime:
        now = self._clock()
        if now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    @staticmethod
    def _set_status(ticket: Ticket, status: TicketStatus, *, at: datetime, actor: str, note: str) -> bool:
        previous = ticket.status
        if previous == status:
            return False
        ticket.status = status
        ticket.status_history.append(StatusHistoryEntry(status=status, timestamp=at, updated_by=actor, notes=note))
        logger.info("Ticket %s status %s -> %s (%s)", ticket.id, previous.value, status.value, actor)
        return True

    @staticmethod
    def _validate_customer_payload(payload: CustomerIntakePayload) -> None:
        contact = payload.customer_info
        if not contact.name.strip():
            raise TicketValidationError("Customer name is required")
        if "@" not in contact.email:
            raise TicketValidationError("A valid email address is required")
        if contact.notification_preference in (NotificationMethod.TEXT, NotificationMethod.CALL) and not contact.phone.strip():
            raise TicketValidationError("A phone number is required for text or call notifications")
        if not payload.vehicle.id:
            raise TicketValidationError("A vehicle must be selected")
        if not payload.selected_services:
            raise TicketValidationError("At least one service must be selected")

    @staticmethod
    def _validate_employee_payload(payload: EmployeeIntakePayload) -> None:
        if not payload.customer.id:
            raise TicketValidationError("A customer must be selected")
        if not payload.vehicle.id:
            raise TicketValidationError("A vehicle must be selected")
        if not (payload.symptoms or payload.description or payload.selected_services):
            raise TicketValidationError("Describe the problem or select at least one service")


def _coerce_status(status: TicketStatus | str) -> TicketStatus:
    try:
        return TicketStatus(status)
    except ValueError as exc:
        raise TicketValidationError(f"Unknown ticket status: {status}") from exc
