"""Sequential ticket identifiers (``t1``, ``t2``, ...)."""

from __future__ import annotations

from threading import Lock
from typing import Iterable


class TicketIdGenerator:
    """Issue ``<prefix><n>`` identifiers from a strictly increasing counter.

    The counter is reseeded from the identifiers already present in the store
    so that a restart never reissues an id that is in use.
    """

    def __init__(self, prefix: str = "t", *, start: int = 1) -> None:
        if not prefix:
            raise ValueError("prefix must not be empty")
        self._prefix = prefix
        self._next = max(1, start)
        self._lock = Lock()

    @property
    def prefix(self) -> str:
        return self._prefix

    def parse_sequence(self, ticket_id: str) -> int | None:
        if not ticket_id.startswith(self._prefix):
            return None
        suffix = ticket_id[len(self._prefix) :]
        if not suffix.isdigit():
            return None
        return int(suffix)

    def seed(self, existing_ids: Iterable[str]) -> int:
        """Advance the counter past the highest numeric suffix in ``existing_ids``."""

        highest = 0
        for ticket_id in existing_ids:
            sequence = self.parse_sequence(ticket_id)
            if sequence is not None and sequence > highest:
                highest = sequence
        with self._lock:
            self._next = max(self._next, highest + 1)
            return self._next

    def next_id(self) -> str:
        with self._lock:
            value = self._next
            self._next += 1
        return f"{self._prefix}{value}"
