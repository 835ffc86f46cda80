from __future__ import annotations

from contextlib import contextmanager
from typing import Annotated, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import Field

from autoshop.dependencies.tickets import get_ticket_service
from autoshop.tickets.errors import (
    IntakeAlreadyRecordedError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketStorageError,
    TicketValidationError,
)
from autoshop.tickets.models import MechanicIntake, Record, RescheduleInfo, Ticket
from autoshop.tickets.payloads import CustomerIntakePayload, EmployeeIntakePayload, FindingDraft
from autoshop.tickets.service import TicketService
from autoshop.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class EmployeeIntakeRequest(EmployeeIntakePayload):
    created_by: str | None = None


class AssignMechanicsRequest(Record):
    mechanic_ids: list[str] = Field(..., min_length=1)
    actor: str | None = None


class TicketStatusChangeRequest(Record):
    status: TicketStatus
    actor: str | None = None
    note: str | None = Field(default=None, max_length=500)
    override: bool = False


class TicketNotesRequest(Record):
    notes: str


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]


@contextmanager
def _translate_errors() -> Iterator[None]:
    try:
        yield
    except TicketNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (InvalidTicketTransitionError, IntakeAlreadyRecordedError) as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except TicketValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except TicketStorageError as exc:
        raise HTTPException(status_code=503, detail=str(exc)) from exc


@router.post("/customer-intake", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def create_from_customer_intake(payload: CustomerIntakePayload, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.create_from_customer_flow(payload)


@router.post("/employee-intake", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def create_from_employee_intake(payload: EmployeeIntakeRequest, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.create_from_employee_flow(payload, created_by=payload.created_by)


@router.get("", response_model=list[Ticket])
async def list_tickets(
    service: TicketServiceDep,
    status_filter: TicketStatus | None = Query(default=None, alias="status"),
    assigned_to: str | None = Query(default=None, alias="assignedTo"),
) -> list[Ticket]:
    return await service.get_tickets(status=status_filter, assigned_to=assigned_to)


@router.get("/{ticket_id}", response_model=Ticket)
async def get_ticket(ticket_id: str, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.get_ticket(ticket_id)


@router.post("/{ticket_id}/mechanics", response_model=Ticket)
async def assign_mechanics(ticket_id: str, payload: AssignMechanicsRequest, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        if payload.actor:
            return await service.assign_mechanics(ticket_id, payload.mechanic_ids, actor=payload.actor)
        return await service.assign_mechanics(ticket_id, payload.mechanic_ids)


@router.delete("/{ticket_id}/mechanics/{mechanic_id}", response_model=Ticket)
async def remove_mechanic(ticket_id: str, mechanic_id: str, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.remove_mechanic(ticket_id, mechanic_id)


@router.post("/{ticket_id}/status", response_model=Ticket)
async def change_ticket_status(
    ticket_id: str,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
) -> Ticket:
    with _translate_errors():
        if payload.override:
            if not payload.actor:
                raise TicketValidationError("An actor is required for a status override")
            return await service.override_ticket_status(
                ticket_id, payload.status, actor=payload.actor, note=payload.note
            )
        return await service.update_ticket_status(ticket_id, payload.status, actor=payload.actor, note=payload.note)


@router.put("/{ticket_id}/notes", response_model=Ticket)
async def update_ticket_notes(ticket_id: str, payload: TicketNotesRequest, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.update_ticket_notes(ticket_id, payload.notes)


@router.put("/{ticket_id}/reschedule", response_model=Ticket)
async def set_reschedule_info(ticket_id: str, payload: RescheduleInfo, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.set_reschedule_info(ticket_id, payload)


@router.put("/{ticket_id}/intake", response_model=Ticket)
async def set_mechanic_intake(
    ticket_id: str,
    payload: MechanicIntake,
    service: TicketServiceDep,
    replace: bool = Query(default=False),
) -> Ticket:
    with _translate_errors():
        return await service.set_mechanic_intake(ticket_id, payload, replace=replace)


@router.post("/{ticket_id}/findings", response_model=Ticket, status_code=status.HTTP_201_CREATED)
async def add_additional_finding(ticket_id: str, payload: FindingDraft, service: TicketServiceDep) -> Ticket:
    with _translate_errors():
        return await service.add_additional_finding(ticket_id, payload)
