from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, computed_field, model_validator
from pydantic.alias_generators import to_camel

from .state import TicketStatus


def utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class TicketSource(str, Enum):
    CUSTOMER = "customer"
    EMPLOYEE = "employee"


class NotificationMethod(str, Enum):
    TEXT = "text"
    CALL = "call"
    EMAIL = "email"


class PhotoCategory(str, Enum):
    DAMAGE = "damage"
    DASHBOARD_WARNING = "dashboard-warning"
    VIN_STICKER = "vin-sticker"
    ENGINE_BAY = "engine-bay"
    TIRES = "tires"
    INTERIOR = "interior"
    EXTERIOR = "exterior"
    OTHER = "other"


class ServiceStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"


class FindingSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FindingStatus(str, Enum):
    PROPOSED = "proposed"
    APPROVED = "approved"
    DECLINED = "declined"


class TransmissionType(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"
    CVT = "cvt"
    OTHER = "other"


class Drivetrain(str, Enum):
    FWD = "fwd"
    RWD = "rwd"
    AWD = "awd"
    FOUR_BY_FOUR = "4x4"
    OTHER = "other"


class FuelType(str, Enum):
    GASOLINE = "gasoline"
    DIESEL = "diesel"
    HYBRID = "hybrid"
    EV = "ev"
    OTHER = "other"


class CarStatus(str, Enum):
    IN_SHOP = "in-shop"
    NOT_IN_SHOP = "not-in-shop"


class Record(BaseModel):
    """Base for persisted records; JSON documents use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Customer(Record):
    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    address: str | None = None
    preferred_notification: NotificationMethod | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


class Vehicle(Record):
    id: str
    customer_id: str | None = None
    plate: str = ""
    make: str = ""
    model: str = ""
    year: int | None = None
    color: str | None = None
    vin: str | None = None
    nickname: str | None = None


class ServiceLine(Record):
    """A requested service on a ticket, tracked independently of the ticket status."""

    id: str
    name: str
    description: str | None = None
    estimated_hours: float | None = None
    status: ServiceStatus = ServiceStatus.PENDING


class Photo(Record):
    """Canonical attachment record."""

    id: str
    category: PhotoCategory = PhotoCategory.OTHER
    data_url: str
    description: str | None = None
    created_at: datetime = Field(default_factory=utcnow)


class MechanicIntake(Record):
    """Pre-service inspection captured once before work starts."""

    mileage: int = Field(ge=0)
    vin: str
    engine_type: str
    transmission_type: TransmissionType
    drivetrain: Drivetrain
    fuel_type: FuelType
    check_engine_light_on: bool
    tire_condition_notes: str | None = None
    brake_condition_notes: str | None = None
    fluid_check_notes: str | None = None
    battery_health_notes: str | None = None
    exterior_damage_notes: str | None = None
    intake_completed_at: datetime = Field(default_factory=utcnow)
    intake_mechanic_id: str = Field(min_length=1)


class AdditionalFinding(Record):
    id: str
    created_at: datetime
    mechanic_id: str
    title: str
    description: str
    severity: FindingSeverity
    requires_customer_approval: bool = False
    status: FindingStatus = FindingStatus.PROPOSED
    photos: list[Photo] = Field(default_factory=list)


class RescheduleInfo(Record):
    """Requested or scheduled return visit."""

    reason: str = Field(min_length=1)
    notes: str | None = None
    requested_by_mechanic_id: str | None = None
    scheduled_date: str | None = None
    scheduled_time: str | None = None
    photos: list[Photo] = Field(default_factory=list)

    @property
    def is_scheduled(self) -> bool:
        return bool(self.scheduled_date and self.scheduled_time)


class SchedulingPreferences(Record):
    """Customer drop-off and pickup hints; informational only."""

    dropoff_date: str | None = None
    dropoff_time: str | None = None
    pickup_date: str | None = None
    pickup_time: str | None = None
    notification_method: NotificationMethod | None = None
    car_status: CarStatus | None = None


class StatusHistoryEntry(Record):
    status: TicketStatus
    timestamp: datetime
    updated_by: str
    notes: str | None = None


class Ticket(Record):
    """Aggregate describing a repair request for one customer's vehicle."""

    id: str = Field(frozen=True)
    source: TicketSource = Field(frozen=True)
    customer: Customer
    vehicle: Vehicle
    services: list[ServiceLine] = Field(default_factory=list)
    symptoms: str | None = None
    notes: str | None = None
    description: str | None = None
    photos: list[Photo] = Field(default_factory=list)
    status: TicketStatus = TicketStatus.PENDING_ADMIN_REVIEW
    created_at: datetime = Field(frozen=True)
    updated_at: datetime
    created_by: str | None = None
    assigned_mechanic_ids: list[str] = Field(default_factory=list)
    mechanic_intake: MechanicIntake | None = None
    additional_findings: list[AdditionalFinding] = Field(default_factory=list)
    reschedule_info: RescheduleInfo | None = None
    status_history: list[StatusHistoryEntry] = Field(default_factory=list)
    scheduling_preferences: SchedulingPreferences | None = None

    @model_validator(mode="before")
    @classmethod
    def _migrate_legacy_assignee(cls, data: Any) -> Any:
        # Documents written before multi-assignment only carry the singular field.
        if not isinstance(data, dict):
            return data
        if data.get("assignedMechanicIds") is not None or data.get("assigned_mechanic_ids") is not None:
            return data
        legacy = data.get("assignedMechanicId") or data.get("assignedTo")
        if legacy:
            data = {**data, "assignedMechanicIds": [legacy]}
        return data

    @computed_field(alias="assignedMechanicId")  # type: ignore[prop-decorator]
    @property
    def assigned_mechanic_id(self) -> str | None:
        return self.assigned_mechanic_ids[0] if self.assigned_mechanic_ids else None

    @computed_field(alias="assignedTo")  # type: ignore[prop-decorator]
    @property
    def assigned_to(self) -> str | None:
        return self.assigned_mechanic_id

    @computed_field(alias="customerId")  # type: ignore[prop-decorator]
    @property
    def customer_id(self) -> str:
        return self.customer.id

    @computed_field(alias="vehicleId")  # type: ignore[prop-decorator]
    @property
    def vehicle_id(self) -> str:
        return self.vehicle.id

    @computed_field(alias="createdByType")  # type: ignore[prop-decorator]
    @property
    def created_by_type(self) -> TicketSource:
        return self.source

    def is_assigned_to(self, mechanic_id: str) -> bool:
        return mechanic_id in self.assigned_mechanic_ids

    def snapshot(self) -> Ticket:
        return self.model_copy(deep=True)
