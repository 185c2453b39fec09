from __future__ import annotations

from threading import Lock
from typing import Callable, List, Optional
from weakref import WeakValueDictionary

from ...domain.booking import (
    BookingLifecycle,
    find_payment_anomalies,
    new_booking,
)
from ...domain.enums import (
    ActorRole,
    BookingAction,
    EquipmentStatus,
    PaymentStatus,
    VendorStatus,
)
from ...domain.errors import ConcurrentUpdate, InvalidTransition, NotFound, ValidationError
from ...infra.booking_store import BookingRepository
from ...infra.config import get_config
from ...infra.event_log import BookingEventLog
from ...observability.logging_utils import log_event, log_warning
from ...observability.otel import record_exception, start_span
from ...schemas import Actor, Booking, BookingEvent, BookingRequest
from .availability_service import AvailabilityService
from .vendor_service import VendorService


def _check_party(booking: Booking, actor: Actor, action: BookingAction) -> None:
    owner = booking.vendor_id if actor.role == ActorRole.VENDOR else booking.farmer_ref
    if actor.actor_id != owner:
        raise InvalidTransition(
            f"{actor.actor_id} is not the {actor.role.value} on booking {booking.booking_id}",
            booking_id=booking.booking_id,
            action=action.value,
        )


class BookingService:
    """
    Booking requests and their lifecycle.

    Transitions on one booking are serialized in-process by a per-booking
    lock and across processes by a versioned compare-and-swap on the
    stored record. A lost race is retried against the fresh record and
    surfaces as ``ConcurrentUpdate`` once retries run out.
    """

    def __init__(
        self,
        repository: BookingRepository,
        events: BookingEventLog,
        vendors: VendorService,
        availability: AvailabilityService,
        *,
        max_retries: Optional[int] = None,
    ) -> None:
        self._repository = repository
        self._events = events
        self._vendors = vendors
        self._availability = availability
        self._max_retries = max_retries or get_config().booking_cas_retries
        # entries disappear once no caller holds the lock
        self._locks: "WeakValueDictionary[str, Lock]" = WeakValueDictionary()
        self._locks_guard = Lock()

    def _lock_for(self, booking_id: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(booking_id)
            if lock is None:
                lock = Lock()
                self._locks[booking_id] = lock
            return lock

    def request_booking(self, request: BookingRequest) -> Booking:
        vendor = self._vendors.get_vendor(request.vendor_id)
        if vendor.status != VendorStatus.ACTIVE:
            raise ValidationError(
                f"vendor {request.vendor_id} is {vendor.status.value}",
                fields=["vendor_id"],
            )
        offering = vendor.find_equipment(request.equipment_id)
        if offering is None:
            raise NotFound(
                f"equipment {request.equipment_id} not found for vendor {request.vendor_id}",
                vendor_id=request.vendor_id,
                equipment_id=request.equipment_id,
            )
        if offering.status != EquipmentStatus.AVAILABLE:
            raise ValidationError(
                f"equipment {request.equipment_id} is {offering.status.value}",
                fields=["equipment_id"],
            )
        if not self._availability.is_open(
            request.vendor_id, request.booking_date, request.start_time
        ):
            raise ValidationError(
                f"vendor {request.vendor_id} is not open on "
                f"{request.booking_date.isoformat()}"
                + (f" at {request.start_time.isoformat()}" if request.start_time else ""),
                fields=["booking_date"] + (["start_time"] if request.start_time else []),
            )
        booking, event = new_booking(request)
        self._repository.create(booking)
        self._events.append(event)
        log_event(
            "booking_requested",
            booking_id=booking.booking_id,
            vendor_id=booking.vendor_id,
            equipment_id=booking.equipment_id,
            booking_date=booking.booking_date.isoformat(),
        )
        return booking

    def get_booking(self, booking_id: str) -> Booking:
        return self._load(booking_id)[0]

    def _load(self, booking_id: str):
        found = self._repository.get(booking_id)
        if found is None:
            raise NotFound(f"booking {booking_id} not found", booking_id=booking_id)
        return found

    def list_bookings(
        self,
        *,
        vendor_id: Optional[str] = None,
        farmer_ref: Optional[str] = None,
        booking_status: Optional[str] = None,
    ) -> List[Booking]:
        return self._repository.list(
            vendor_id=vendor_id, farmer_ref=farmer_ref, booking_status=booking_status
        )

    def list_events(self, booking_id: str) -> List[BookingEvent]:
        self._load(booking_id)
        return self._events.for_booking(booking_id)

    def _mutate(
        self,
        booking_id: str,
        operation: str,
        change: Callable[[BookingLifecycle], Booking],
    ) -> Booking:
        with self._lock_for(booking_id), start_span(
            f"booking.{operation}", {"booking.id": booking_id}
        ) as span:
            for attempt in range(1, self._max_retries + 1):
                booking, version = self._load(booking_id)
                lifecycle = BookingLifecycle(booking)
                try:
                    updated = change(lifecycle)
                except Exception as exc:
                    record_exception(span, exc)
                    raise
                if self._repository.put_if_match(updated, version) is not None:
                    self._events.extend(lifecycle.events)
                    return updated
                log_warning(
                    "booking_version_conflict",
                    booking_id=booking_id,
                    operation=operation,
                    attempt=attempt,
                )
            exc = ConcurrentUpdate(
                f"booking {booking_id} kept changing during {operation}",
                booking_id=booking_id,
            )
            record_exception(span, exc)
            raise exc

    def transition(
        self,
        booking_id: str,
        action: BookingAction,
        actor: Actor,
        *,
        reason: Optional[str] = None,
    ) -> Booking:
        action = BookingAction(action)

        def change(lifecycle: BookingLifecycle) -> Booking:
            _check_party(lifecycle.booking, actor, action)
            return lifecycle.apply(
                action, actor.role, actor_id=actor.actor_id, reason=reason
            )

        booking = self._mutate(booking_id, action.value, change)
        log_event(
            "booking_transition",
            booking_id=booking_id,
            action=action.value,
            actor=actor.actor_id,
            role=actor.role.value,
            status=booking.booking_status.value,
        )
        return booking

    def confirm(self, booking_id: str, actor: Actor) -> Booking:
        return self.transition(booking_id, BookingAction.CONFIRM, actor)

    def cancel(self, booking_id: str, actor: Actor, *, reason: Optional[str] = None) -> Booking:
        return self.transition(booking_id, BookingAction.CANCEL, actor, reason=reason)

    def complete(self, booking_id: str, actor: Actor) -> Booking:
        return self.transition(booking_id, BookingAction.COMPLETE, actor)

    def record_payment(
        self,
        booking_id: str,
        status: PaymentStatus,
        *,
        reference: Optional[str] = None,
    ) -> Booking:
        status = PaymentStatus(status)
        booking = self._mutate(
            booking_id,
            "payment",
            lambda lifecycle: lifecycle.record_payment(status, reference=reference),
        )
        log_event(
            "booking_payment_recorded",
            booking_id=booking_id,
            payment_status=status.value,
            booking_status=booking.booking_status.value,
        )
        return booking

    def payment_anomalies(self, *, vendor_id: Optional[str] = None) -> List[Booking]:
        flagged = find_payment_anomalies(self._repository.list(vendor_id=vendor_id))
        if flagged:
            log_warning(
                "booking_payment_anomaly",
                vendor_id=vendor_id,
                booking_ids=[item.booking_id for item in flagged],
            )
        return flagged
