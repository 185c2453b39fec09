from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from ..schemas import Booking, BookingEvent, BookingRequest
from .enums import ActorRole, BookingAction, BookingStatus, PaymentStatus
from .errors import InvalidTransition


TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    {BookingStatus.CANCELLED, BookingStatus.COMPLETED}
)

# (current status, action) -> next status
TRANSITIONS: Dict[Tuple[BookingStatus, BookingAction], BookingStatus] = {
    (BookingStatus.PENDING, BookingAction.CONFIRM): BookingStatus.CONFIRMED,
    (BookingStatus.PENDING, BookingAction.CANCEL): BookingStatus.CANCELLED,
    (BookingStatus.CONFIRMED, BookingAction.COMPLETE): BookingStatus.COMPLETED,
    (BookingStatus.CONFIRMED, BookingAction.CANCEL): BookingStatus.CANCELLED,
}

ALLOWED_ACTORS: Dict[BookingAction, FrozenSet[ActorRole]] = {
    BookingAction.CONFIRM: frozenset({ActorRole.VENDOR}),
    BookingAction.COMPLETE: frozenset({ActorRole.VENDOR}),
    BookingAction.CANCEL: frozenset({ActorRole.VENDOR, ActorRole.FARMER}),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def build_event(
    booking_id: str,
    event_type: str,
    *,
    actor: Optional[str] = None,
    from_status: Optional[str] = None,
    to_status: Optional[str] = None,
    data: Optional[dict] = None,
    occurred_at: Optional[datetime] = None,
) -> BookingEvent:
    return BookingEvent(
        event_id=str(uuid.uuid4()),
        booking_id=booking_id,
        event_type=event_type,
        actor=actor,
        from_status=from_status,
        to_status=to_status,
        occurred_at=occurred_at or utcnow(),
        data=data or {},
    )


def new_booking(
    request: BookingRequest,
    *,
    booking_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Tuple[Booking, BookingEvent]:
    """Create a booking in ``pending`` together with its creation event."""
    now = now or utcnow()
    booking = Booking(
        booking_id=booking_id or str(uuid.uuid4()),
        vendor_id=request.vendor_id,
        equipment_id=request.equipment_id,
        farmer_ref=request.farmer_ref,
        booking_date=request.booking_date,
        start_time=request.start_time,
        duration=request.duration,
        total_amount=request.total_amount,
        payment_status=PaymentStatus.PENDING,
        booking_status=BookingStatus.PENDING,
        created_at=now,
        updated_at=now,
    )
    event = build_event(
        booking.booking_id,
        "booking.requested",
        actor=request.farmer_ref,
        to_status=booking.booking_status.value,
        data={
            "vendor_id": booking.vendor_id,
            "equipment_id": booking.equipment_id,
            "booking_date": booking.booking_date.isoformat(),
        },
        occurred_at=now,
    )
    return booking, event


class BookingLifecycle:
    """
    State machine for one booking.

    ``booking_status`` moves pending -> confirmed/cancelled -> completed and
    nothing leaves ``cancelled`` or ``completed``. ``payment_status`` is
    tracked independently and never gates a transition. Every change yields
    an audit event collected in ``events``.
    """

    def __init__(self, booking: Booking) -> None:
        self._booking = booking
        self.events: List[BookingEvent] = []

    @property
    def booking(self) -> Booking:
        return self._booking

    @property
    def status(self) -> BookingStatus:
        return self._booking.booking_status

    def can(self, action: BookingAction) -> bool:
        return (self.status, BookingAction(action)) in TRANSITIONS

    def apply(
        self,
        action: BookingAction,
        role: ActorRole,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        action = BookingAction(action)
        role = ActorRole(role)
        current = self.status
        target = TRANSITIONS.get((current, action))
        if target is None:
            raise InvalidTransition(
                f"cannot {action.value} a booking that is {current.value}",
                booking_id=self._booking.booking_id,
                status=current.value,
                action=action.value,
            )
        if role not in ALLOWED_ACTORS[action]:
            raise InvalidTransition(
                f"a {role.value} cannot {action.value} a booking",
                booking_id=self._booking.booking_id,
                status=current.value,
                action=action.value,
            )
        now = now or utcnow()
        self._booking = self._booking.model_copy(
            update={"booking_status": target, "updated_at": now}
        )
        data = {"role": role.value}
        if reason:
            data["reason"] = reason
        self.events.append(
            build_event(
                self._booking.booking_id,
                f"booking.{target.value}",
                actor=actor_id or role.value,
                from_status=current.value,
                to_status=target.value,
                data=data,
                occurred_at=now,
            )
        )
        return self._booking

    def confirm(self, *, actor_id: Optional[str] = None, now: Optional[datetime] = None) -> Booking:
        return self.apply(BookingAction.CONFIRM, ActorRole.VENDOR, actor_id=actor_id, now=now)

    def cancel(
        self,
        role: ActorRole = ActorRole.VENDOR,
        *,
        actor_id: Optional[str] = None,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        return self.apply(
            BookingAction.CANCEL, role, actor_id=actor_id, reason=reason, now=now
        )

    def complete(self, *, actor_id: Optional[str] = None, now: Optional[datetime] = None) -> Booking:
        return self.apply(BookingAction.COMPLETE, ActorRole.VENDOR, actor_id=actor_id, now=now)

    def record_payment(
        self,
        status: PaymentStatus,
        *,
        reference: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        status = PaymentStatus(status)
        previous = self._booking.payment_status
        now = now or utcnow()
        self._booking = self._booking.model_copy(
            update={"payment_status": status, "updated_at": now}
        )
        data = {"booking_status": self._booking.booking_status.value}
        if reference:
            data["reference"] = reference
        self.events.append(
            build_event(
                self._booking.booking_id,
                f"payment.{status.value}",
                actor="payment",
                from_status=previous.value,
                to_status=status.value,
                data=data,
                occurred_at=now,
            )
        )
        return self._booking


def is_payment_anomaly(booking: Booking) -> bool:
    return (
        booking.booking_status == BookingStatus.COMPLETED
        and booking.payment_status == PaymentStatus.PENDING
    )


def find_payment_anomalies(bookings: Iterable[Booking]) -> List[Booking]:
    """Completed bookings still waiting for payment, oldest first."""
    flagged = [item for item in bookings if is_payment_anomaly(item)]
    flagged.sort(key=lambda item: (item.booking_date, item.booking_id))
    return flagged
