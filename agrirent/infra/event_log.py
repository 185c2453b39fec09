"""Append-only audit trail of booking events."""

from __future__ import annotations

from typing import Iterable, List

from ..domain.errors import ConcurrentUpdate
from ..schemas import BookingEvent
from .document_store import DocumentStore


EVENT_COLLECTION = "booking_events"
MAX_SLOT_ATTEMPTS = 64


class BookingEventLog:
    """
    Events are keyed ``<booking_id>:<sequence>`` so a booking's history reads
    back in the order it was written, independent of clock resolution.

    Slots are claimed with a create-only write. A writer that loses a slot to
    another process moves on to the next one instead of dropping its event.
    """

    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def _count(self, booking_id: str) -> int:
        return len(self._store.query(EVENT_COLLECTION, {"booking_id": booking_id}))

    def append(self, event: BookingEvent) -> str:
        data = event.model_dump(mode="json")
        slot = self._count(event.booking_id)
        for _ in range(MAX_SLOT_ATTEMPTS):
            key = f"{event.booking_id}:{slot:06d}"
            version = self._store.put_if_match(
                EVENT_COLLECTION, key, data, expected_version=None
            )
            if version is not None:
                return key
            slot += 1
        raise ConcurrentUpdate(
            f"no free event slot for booking {event.booking_id}",
            event_id=event.event_id,
        )

    def extend(self, events: Iterable[BookingEvent]) -> None:
        for event in events:
            self.append(event)

    def for_booking(self, booking_id: str) -> List[BookingEvent]:
        return [
            BookingEvent.model_validate(document.data)
            for document in self._store.query(
                EVENT_COLLECTION, {"booking_id": booking_id}
            )
        ]
