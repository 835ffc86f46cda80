from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from autoshop.api.routes import tickets as ticket_routes
from autoshop.main import create_app
from autoshop.tickets.errors import (
    IntakeAlreadyRecordedError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketStorageError,
)
from autoshop.tickets.identifiers import TicketIdGenerator
from autoshop.tickets.repository import InMemoryTicketRepository
from autoshop.tickets.service import TicketService
from autoshop.tickets.state import TicketStatus

CUSTOMER_INTAKE = {
    "customerInfo": {"name": "Ana Lopez", "email": "ana@example.com", "phone": "555-0100"},
    "vehicle": {"id": "v1", "make": "Honda", "model": "Civic", "year": 2018},
    "selectedServices": [
        {"id": "s1", "name": "Brakes", "symptoms": "squeals when braking"},
        {"id": "s2", "name": "Oil change"},
    ],
    "photos": ["data:image/png;base64,AAAA"],
}

EMPLOYEE_INTAKE = {
    "customer": {"id": "c1", "firstName": "Sam", "lastName": "Reyes", "email": "sam@example.com"},
    "vehicle": {"id": "v9", "customerId": "c1", "make": "Ford", "model": "F-150"},
    "symptoms": "Grinding noise",
    "createdBy": "desk-1",
}

MECHANIC_INTAKE = {
    "mileage": 84200,
    "vin": "1HGCM82633A004352",
    "engineType": "2.0L I4",
    "transmissionType": "automatic",
    "drivetrain": "fwd",
    "fuelType": "gasoline",
    "checkEngineLightOn": True,
    "intakeMechanicId": "m1",
}


@pytest.fixture
def client():
    app = create_app()
    service = TicketService(InMemoryTicketRepository(), id_generator=TicketIdGenerator("t"))

    async def override_service():
        return service

    app.dependency_overrides[ticket_routes.get_ticket_service] = override_service
    return TestClient(app)


@pytest.fixture
def mock_client():
    app = create_app()
    service = AsyncMock()

    async def override_service():
        return service

    app.dependency_overrides[ticket_routes.get_ticket_service] = override_service
    return TestClient(app), service


def _create(client: TestClient) -> dict:
    response = client.post("/tickets/customer-intake", json=CUSTOMER_INTAKE)
    assert response.status_code == 201
    return response.json()


def test_customer_intake_creates_pending_ticket(client: TestClient):
    body = _create(client)

    assert body["id"] == "t1"
    assert body["status"] == "pending-admin-review"
    assert body["createdByType"] == "customer"
    assert body["statusHistory"] == []
    assert body["assignedMechanicIds"] == []
    assert body["assignedMechanicId"] is None
    assert body["symptoms"] == "Brakes: squeals when braking"
    assert len(body["photos"]) == 1
    assert body["photos"][0]["category"] == "other"
    assert body["customerId"] == body["customer"]["id"]


def test_customer_intake_validation_error_is_422(client: TestClient):
    payload = dict(CUSTOMER_INTAKE, selectedServices=[])

    response = client.post("/tickets/customer-intake", json=payload)

    assert response.status_code == 422


def test_employee_intake_records_creator(client: TestClient):
    response = client.post("/tickets/employee-intake", json=EMPLOYEE_INTAKE)

    assert response.status_code == 201
    body = response.json()
    assert body["createdBy"] == "desk-1"
    assert body["source"] == "employee"
    assert body["vehicleId"] == "v9"


def test_work_order_flow_over_http(client: TestClient):
    ticket_id = _create(client)["id"]

    response = client.post(f"/tickets/{ticket_id}/mechanics", json={"mechanicIds": ["m1", "m2"]})
    assert response.status_code == 200
    assert response.json()["status"] == "assigned"

    response = client.put(f"/tickets/{ticket_id}/intake", json=MECHANIC_INTAKE)
    assert response.status_code == 200
    assert response.json()["status"] == "in-progress"
    assert response.json()["mechanicIntake"]["checkEngineLightOn"] is True

    response = client.put(f"/tickets/{ticket_id}/intake", json=MECHANIC_INTAKE)
    assert response.status_code == 409

    response = client.post(
        f"/tickets/{ticket_id}/findings",
        json={"mechanicId": "m1", "title": "Leaking rear shock", "severity": "high"},
    )
    assert response.status_code == 201
    assert response.json()["additionalFindings"][0]["id"].startswith("finding-")

    response = client.put(f"/tickets/{ticket_id}/notes", json={"notes": "Quote sent"})
    assert response.json()["notes"] == "Quote sent"

    response = client.post(f"/tickets/{ticket_id}/status", json={"status": "work-completed"})
    assert response.status_code == 200
    history = response.json()["statusHistory"]
    assert [entry["status"] for entry in history] == ["assigned", "in-progress", "work-completed"]

    response = client.delete(f"/tickets/{ticket_id}/mechanics/m2")
    assert response.json()["assignedMechanicIds"] == ["m1"]


def test_listing_filters_by_status_and_mechanic(client: TestClient):
    first = _create(client)["id"]
    _create(client)
    client.post(f"/tickets/{first}/mechanics", json={"mechanicIds": ["m1"]})

    assigned = client.get("/tickets", params={"assignedTo": "m1"}).json()
    pending = client.get("/tickets", params={"status": "pending-admin-review"}).json()

    assert [ticket["id"] for ticket in assigned] == [first]
    assert len(pending) == 1
    assert client.get("/tickets", params={"status": "bogus"}).status_code == 422


def test_reschedule_request_over_http(client: TestClient):
    ticket_id = _create(client)["id"]
    client.post(f"/tickets/{ticket_id}/mechanics", json={"mechanicIds": ["m1"]})

    response = client.put(
        f"/tickets/{ticket_id}/reschedule",
        json={"reason": "Waiting on parts", "requestedByMechanicId": "m1"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "return-visit-required"
    assert response.json()["rescheduleInfo"]["reason"] == "Waiting on parts"


def test_override_requires_actor(client: TestClient):
    ticket_id = _create(client)["id"]

    rejected = client.post(f"/tickets/{ticket_id}/status", json={"status": "closed-paid", "override": True})
    accepted = client.post(
        f"/tickets/{ticket_id}/status",
        json={"status": "closed-paid", "override": True, "actor": "owner"},
    )

    assert rejected.status_code == 422
    assert accepted.status_code == 200
    assert accepted.json()["statusHistory"][-1]["updatedBy"] == "owner"


def test_missing_ticket_is_404(client: TestClient):
    assert client.get("/tickets/t404").status_code == 404


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (TicketNotFoundError("t1"), 404),
        (InvalidTicketTransitionError("Cannot transition"), 409),
        (IntakeAlreadyRecordedError("already recorded"), 409),
        (TicketStorageError("disk full"), 503),
    ],
)
def test_service_errors_map_to_status_codes(mock_client, error, expected):
    client, service = mock_client
    service.update_ticket_status.side_effect = error

    response = client.post("/tickets/t1/status", json={"status": "in-progress", "actor": "m1"})

    assert response.status_code == expected
    service.update_ticket_status.assert_awaited_once_with(
        "t1", TicketStatus.IN_PROGRESS, actor="m1", note=None
    )


def test_routes_return_503_without_service():
    client = TestClient(create_app())

    assert client.get("/tickets").status_code == 503
    assert client.get("/ping").json() == {"status": "ok", "storage": "unavailable"}
