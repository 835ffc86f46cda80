from __future__ import annotations

import pytest

from autoshop.tickets.identifiers import TicketIdGenerator
from autoshop.tickets.models import Customer, MechanicIntake, Vehicle
from autoshop.tickets.payloads import (
    ContactInfo,
    CustomerIntakePayload,
    EmployeeIntakePayload,
    SelectedService,
)
from autoshop.tickets.repository import InMemoryTicketRepository
from autoshop.tickets.service import TicketService

DATA_URL = "data:image/png;base64,iVBORw0KGgo="


def make_customer_payload(**overrides) -> CustomerIntakePayload:
    data = {
        "customer_info": ContactInfo(
            name="Ana Lopez",
            email="ana@example.com",
            phone="555-0100",
        ),
        "vehicle": Vehicle(id="v1", make="Honda", model="Civic", year=2018, plate="ABC123"),
        "selected_services": [
            SelectedService(id="s1", name="Brakes", symptoms="squeals when braking"),
            SelectedService(id="s2", name="Oil change"),
        ],
    }
    data.update(overrides)
    return CustomerIntakePayload(**data)


def make_employee_payload(**overrides) -> EmployeeIntakePayload:
    data = {
        "customer": Customer(id="c1", first_name="Sam", last_name="Reyes", email="sam@example.com"),
        "vehicle": Vehicle(id="v9", customer_id="c1", make="Ford", model="F-150", year=2015),
        "symptoms": "Grinding noise from the front left wheel",
    }
    data.update(overrides)
    return EmployeeIntakePayload(**data)


def make_intake(mechanic_id: str = "m1", **overrides) -> MechanicIntake:
    data = {
        "mileage": 84200,
        "vin": "1HGCM82633A004352",
        "engine_type": "2.0L I4",
        "transmission_type": "automatic",
        "drivetrain": "fwd",
        "fuel_type": "gasoline",
        "check_engine_light_on": False,
        "intake_mechanic_id": mechanic_id,
    }
    data.update(overrides)
    return MechanicIntake(**data)


@pytest.fixture
def repository() -> InMemoryTicketRepository:
    return InMemoryTicketRepository()


@pytest.fixture
def service(repository: InMemoryTicketRepository) -> TicketService:
    return TicketService(repository, id_generator=TicketIdGenerator("t"))
