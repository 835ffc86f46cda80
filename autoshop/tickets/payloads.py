"""Typed inputs accepted by the two intake flows and the work-order screen."""

from __future__ import annotations

from datetime import datetime

from pydantic import Field

from .models import (
    CarStatus,
    Customer,
    FindingSeverity,
    FindingStatus,
    NotificationMethod,
    PhotoCategory,
    Record,
    SchedulingPreferences,
    ServiceLine,
    Vehicle,
)


class PhotoUpload(Record):
    """Upload as sent by a form; missing fields are filled in by the normalizer."""

    data_url: str = Field(min_length=1)
    id: str | None = None
    category: PhotoCategory | None = None
    description: str | None = None
    created_at: datetime | None = None


PhotoInput = PhotoUpload | str


class ContactInfo(Record):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    phone: str = ""
    address: str | None = None
    notification_preference: NotificationMethod = NotificationMethod.TEXT


class SelectedService(Record):
    id: str
    name: str = Field(min_length=1)
    price: float | None = None
    sub_option_id: str | None = None
    sub_option_name: str | None = None
    symptoms: str | None = None
    photos: list[PhotoInput] = Field(default_factory=list)


class CustomerSchedulingRequest(Record):
    pickup_time: str | None = None
    car_status: CarStatus = CarStatus.NOT_IN_SHOP
    drop_off_date: str | None = None


class CustomerIntakePayload(Record):
    """Submission of the customer self-service wizard."""

    customer_info: ContactInfo
    vehicle: Vehicle
    selected_services: list[SelectedService] = Field(default_factory=list)
    scheduling_preferences: CustomerSchedulingRequest = Field(default_factory=CustomerSchedulingRequest)
    photos: list[PhotoInput] = Field(default_factory=list)


class EmployeeIntakePayload(Record):
    """Submission of the front-desk intake wizard; customer and vehicle are already resolved."""

    customer: Customer
    vehicle: Vehicle
    symptoms: str | None = None
    description: str | None = None
    selected_services: list[ServiceLine] = Field(default_factory=list)
    photos: list[PhotoInput] = Field(default_factory=list)
    scheduling_preferences: SchedulingPreferences | None = None


class FindingDraft(Record):
    """Finding reported by a mechanic; id and timestamp are assigned on save."""

    mechanic_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    severity: FindingSeverity = FindingSeverity.MEDIUM
    requires_customer_approval: bool = False
    status: FindingStatus = FindingStatus.PROPOSED
    photos: list[PhotoInput] = Field(default_factory=list)
