"""Booking records keyed by booking_id with get / put-if-match semantics."""

from __future__ import annotations

from typing import List, Optional, Tuple

from ..domain.errors import ConcurrentUpdate
from ..schemas import Booking
from .document_store import DocumentStore


BOOKING_COLLECTION = "bookings"


class BookingRepository:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get(self, booking_id: str) -> Optional[Tuple[Booking, int]]:
        document = self._store.get(BOOKING_COLLECTION, booking_id)
        if document is None:
            return None
        return Booking.model_validate(document.data), document.version

    def create(self, booking: Booking) -> int:
        version = self._store.put_if_match(
            BOOKING_COLLECTION,
            booking.booking_id,
            booking.model_dump(mode="json"),
            expected_version=None,
        )
        if version is None:
            raise ConcurrentUpdate(
                f"booking {booking.booking_id} already exists",
                booking_id=booking.booking_id,
            )
        return version

    def put_if_match(self, booking: Booking, expected_version: int) -> Optional[int]:
        return self._store.put_if_match(
            BOOKING_COLLECTION,
            booking.booking_id,
            booking.model_dump(mode="json"),
            expected_version=expected_version,
        )

    def list(
        self,
        *,
        vendor_id: Optional[str] = None,
        farmer_ref: Optional[str] = None,
        booking_status: Optional[str] = None,
    ) -> List[Booking]:
        filters = {}
        if vendor_id:
            filters["vendor_id"] = vendor_id
        if farmer_ref:
            filters["farmer_ref"] = farmer_ref
        if booking_status:
            filters["booking_status"] = booking_status
        bookings = [
            Booking.model_validate(document.data)
            for document in self._store.query(BOOKING_COLLECTION, filters)
        ]
        bookings.sort(key=lambda item: (item.booking_date, item.booking_id))
        return bookings
