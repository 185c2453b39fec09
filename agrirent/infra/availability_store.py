"""Vendor calendars persisted as one document per vendor, last writer wins."""

from __future__ import annotations

from ..domain.availability import AvailabilityCalendar
from ..schemas import AvailabilityWindow
from .document_store import DocumentStore


AVAILABILITY_COLLECTION = "availability"


class AvailabilityStore:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def load(self, vendor_id: str) -> AvailabilityCalendar:
        """The vendor's calendar, or the default week when none was saved."""
        document = self._store.get(AVAILABILITY_COLLECTION, vendor_id)
        if document is None:
            return AvailabilityCalendar(vendor_id)
        window = AvailabilityWindow.model_validate(document.data)
        return AvailabilityCalendar.from_window(window)

    def save(self, calendar: AvailabilityCalendar) -> None:
        window = calendar.to_window()
        self._store.put(
            AVAILABILITY_COLLECTION, calendar.vendor_id, window.model_dump(mode="json")
        )
