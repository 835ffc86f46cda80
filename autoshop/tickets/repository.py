from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from autoshop.db.models import TicketMechanicTable, TicketTable

from .errors import TicketStorageError
from .models import Customer, Ticket
from .state import TicketStatus

logger = logging.getLogger(__name__)

STORAGE_KEY = "automotive_tickets"


def _email_key(email: str) -> str:
    return email.strip().lower()


@dataclass(slots=True)
class TicketFilter:
    """Optional listing filter; unset fields match every ticket."""

    status: TicketStatus | None = None
    assigned_to: str | None = None

    def matches(self, ticket: Ticket) -> bool:
        if self.status is not None and ticket.status != self.status:
            return False
        if self.assigned_to is not None and not ticket.is_assigned_to(self.assigned_to):
            return False
        return True


class TicketRepository(Protocol):
    """Storage contract the lifecycle engine depends on."""

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        ...

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        ...

    async def list_tickets(self, ticket_filter: TicketFilter | None = None) -> list[Ticket]:
        ...

    async def replace_ticket(self, ticket: Ticket) -> Ticket | None:
        ...

    async def list_ticket_ids(self) -> list[str]:
        ...

    async def find_customer_by_email(self, email: str) -> Customer | None:
        ...


class InMemoryTicketRepository:
    """Process-local ticket store holding serialized documents.

    When ``snapshot_path`` is given, the whole collection is written after each
    change as a JSON array under :data:`STORAGE_KEY`, and read back on startup.
    A failed write leaves both the file and the in-memory collection untouched.
    """

    def __init__(self, *, snapshot_path: str | Path | None = None) -> None:
        self._documents: dict[str, dict[str, Any]] = {}
        self._snapshot_path = Path(snapshot_path) if snapshot_path else None
        if self._snapshot_path is not None and self._snapshot_path.exists():
            self.load(self._snapshot_path.read_text(encoding="utf-8"))

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        if ticket.id in self._documents:
            raise TicketStorageError(f"Ticket {ticket.id} already exists")
        self._commit(ticket)
        return ticket.snapshot()

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        document = self._documents.get(ticket_id)
        if document is None:
            return None
        return Ticket.model_validate(document)

    async def list_tickets(self, ticket_filter: TicketFilter | None = None) -> list[Ticket]:
        tickets = [Ticket.model_validate(document) for document in self._documents.values()]
        if ticket_filter is None:
            return tickets
        return [ticket for ticket in tickets if ticket_filter.matches(ticket)]

    async def replace_ticket(self, ticket: Ticket) -> Ticket | None:
        if ticket.id not in self._documents:
            return None
        self._commit(ticket)
        return ticket.snapshot()

    async def list_ticket_ids(self) -> list[str]:
        return list(self._documents)

    async def find_customer_by_email(self, email: str) -> Customer | None:
        needle = _email_key(email)
        for document in self._documents.values():
            customer = document.get("customer") or {}
            if _email_key(str(customer.get("email", ""))) == needle:
                return Customer.model_validate(customer)
        return None

    def dump(self) -> str:
        return json.dumps({STORAGE_KEY: list(self._documents.values())})

    def load(self, raw: str) -> None:
        """Replace the collection with a snapshot produced by :meth:`dump`."""

        try:
            payload = json.loads(raw)
            items = payload.get(STORAGE_KEY, []) if isinstance(payload, dict) else payload
            tickets = [Ticket.model_validate(item) for item in items]
        except (ValueError, ValidationError) as exc:
            raise TicketStorageError(f"Unreadable ticket snapshot: {exc}") from exc
        self._documents = {ticket.id: ticket.to_document() for ticket in tickets}
        logger.info("Loaded %d tickets from snapshot", len(self._documents))

    def _commit(self, ticket: Ticket) -> None:
        try:
            document = ticket.to_document()
        except (TypeError, ValueError) as exc:
            raise TicketStorageError(f"Ticket {ticket.id} could not be serialized") from exc

        previous = self._documents.get(ticket.id)
        self._documents[ticket.id] = document
        try:
            self._write_snapshot()
        except OSError as exc:
            if previous is None:
                del self._documents[ticket.id]
            else:
                self._documents[ticket.id] = previous
            logger.exception("Failed to persist ticket %s", ticket.id)
            raise TicketStorageError(f"Ticket {ticket.id} could not be persisted") from exc

    def _write_snapshot(self) -> None:
        if self._snapshot_path is None:
            return
        directory = self._snapshot_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=".tickets-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(self.dump())
            os.replace(tmp_name, self._snapshot_path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise


class SqlTicketRepository:
    """Ticket store on top of SQLModel tables; each write is one transaction."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    async def create_ticket(self, ticket: Ticket) -> Ticket:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    session.add(self._ticket_to_row(ticket))
                    await session.flush()
                    session.add_all(self._mechanic_rows(ticket))
        except SQLAlchemyError as exc:
            logger.exception("Failed to insert ticket %s", ticket.id)
            raise TicketStorageError(f"Ticket {ticket.id} could not be persisted") from exc
        return ticket.snapshot()

    async def get_ticket(self, ticket_id: str) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._row_to_ticket(row)

    async def list_tickets(self, ticket_filter: TicketFilter | None = None) -> list[Ticket]:
        statement = select(TicketTable)
        if ticket_filter is not None and ticket_filter.status is not None:
            statement = statement.where(TicketTable.status == ticket_filter.status.value)
        if ticket_filter is not None and ticket_filter.assigned_to is not None:
            assigned = select(TicketMechanicTable.ticket_id).where(
                TicketMechanicTable.mechanic_id == ticket_filter.assigned_to
            )
            statement = statement.where(TicketTable.id.in_(assigned))
        statement = statement.order_by(TicketTable.created_at.asc(), TicketTable.id.asc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._row_to_ticket(row) for row in result.scalars().all()]

    async def replace_ticket(self, ticket: Ticket) -> Ticket | None:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    row = await session.get(TicketTable, ticket.id)
                    if row is None:
                        return None
                    row.status = ticket.status.value
                    row.customer_email = _email_key(ticket.customer.email)
                    row.document = ticket.to_document()
                    row.updated_at = ticket.updated_at
                    await session.execute(
                        delete(TicketMechanicTable).where(TicketMechanicTable.ticket_id == ticket.id)
                    )
                    session.add_all(self._mechanic_rows(ticket))
        except SQLAlchemyError as exc:
            logger.exception("Failed to update ticket %s", ticket.id)
            raise TicketStorageError(f"Ticket {ticket.id} could not be persisted") from exc
        return ticket.snapshot()

    async def list_ticket_ids(self) -> list[str]:
        async with self._session_factory() as session:
            result = await session.execute(select(TicketTable.id))
            return [str(value) for value in result.scalars().all()]

    async def find_customer_by_email(self, email: str) -> Customer | None:
        statement = (
            select(TicketTable)
            .where(TicketTable.customer_email == _email_key(email))
            .order_by(TicketTable.created_at.asc())
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            row = result.scalars().first()
        if row is None:
            return None
        return self._row_to_ticket(row).customer

    async def import_documents(self, documents: Iterable[dict[str, Any]]) -> int:
        """Bulk load ticket documents, e.g. a legacy JSON snapshot."""

        tickets: Sequence[Ticket] = [Ticket.model_validate(document) for document in documents]
        for ticket in tickets:
            await self.create_ticket(ticket)
        return len(tickets)

    @staticmethod
    def _ticket_to_row(ticket: Ticket) -> TicketTable:
        return TicketTable(
            id=ticket.id,
            status=ticket.status.value,
            source=ticket.source.value,
            customer_email=_email_key(ticket.customer.email),
            document=ticket.to_document(),
            created_at=ticket.created_at,
            updated_at=ticket.updated_at,
        )

    @staticmethod
    def _mechanic_rows(ticket: Ticket) -> list[TicketMechanicTable]:
        return [
            TicketMechanicTable(ticket_id=ticket.id, mechanic_id=mechanic_id, position=position)
            for position, mechanic_id in enumerate(ticket.assigned_mechanic_ids)
        ]

    @staticmethod
    def _row_to_ticket(row: TicketTable) -> Ticket:
        return Ticket.model_validate(row.document)
