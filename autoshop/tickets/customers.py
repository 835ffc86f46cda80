from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Callable, Protocol

from .models import Customer, utcnow
from .payloads import ContactInfo

logger = logging.getLogger(__name__)


class CustomerLookup(Protocol):
    async def find_customer_by_email(self, email: str) -> Customer | None:
        ...


def split_full_name(name: str) -> tuple[str, str]:
    """First token is the first name, the remainder is the last name."""

    parts = name.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


class CustomerResolver:
    """Find the customer behind a contact form or synthesize a new record.

    Matching is by case-insensitive email against customers embedded in
    existing tickets; there is no separate customer directory.
    """

    def __init__(
        self,
        lookup: CustomerLookup,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._lookup = lookup
        self._clock = clock
        self._id_factory = id_factory or _customer_id

    async def resolve(self, contact: ContactInfo) -> Customer:
        email = contact.email.strip()
        existing = await self._lookup.find_customer_by_email(email)
        if existing is not None:
            logger.debug("Matched existing customer %s for %s", existing.id, email)
            return existing

        first_name, last_name = split_full_name(contact.name)
        customer = Customer(
            id=self._id_factory(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            phone=contact.phone,
            address=contact.address,
            preferred_notification=contact.notification_preference,
            created_at=self._clock(),
        )
        logger.info("Created customer %s for %s", customer.id, email)
        return customer


def _customer_id() -> str:
    return f"c{uuid.uuid4().hex[:12]}"
