import importlib.util
import sys
import unittest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

_MISSING_PYDANTIC_SETTINGS = importlib.util.find_spec("pydantic_settings") is None

if not _MISSING_PYDANTIC_SETTINGS:
    from agrirent.domain.booking import (
        BookingLifecycle,
        find_payment_anomalies,
        new_booking,
    )
    from agrirent.domain.enums import (
        ActorRole,
        BookingAction,
        BookingStatus,
        PaymentStatus,
    )
    from agrirent.domain.errors import InvalidTransition
    from agrirent.schemas import BookingRequest


NOW = datetime(2025, 6, 1, 8, 0, tzinfo=timezone.utc)


def _booking(booking_id="b1", booking_date=date(2025, 6, 2)):
    request = BookingRequest(
        vendor_id="v1",
        equipment_id="drone-1",
        farmer_ref="farmer-7",
        booking_date=booking_date,
        duration="Full Day (8 acres)",
        total_amount=4000,
    )
    return new_booking(request, booking_id=booking_id, now=NOW)


@unittest.skipUnless(
    not _MISSING_PYDANTIC_SETTINGS, "pydantic_settings is not installed"
)
class BookingLifecycleTests(unittest.TestCase):
    def test_new_booking_is_pending(self) -> None:
        booking, event = _booking()
        self.assertEqual(booking.booking_status, BookingStatus.PENDING)
        self.assertEqual(booking.payment_status, PaymentStatus.PENDING)
        self.assertEqual(event.event_type, "booking.requested")
        self.assertEqual(event.to_status, "pending")
        self.assertEqual(booking.created_at, NOW)

    def test_cancel_then_confirm_fails(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        lifecycle.cancel(ActorRole.FARMER)
        with self.assertRaises(InvalidTransition):
            lifecycle.confirm()
        self.assertEqual(lifecycle.status, BookingStatus.CANCELLED)

    def test_complete_then_cancel_fails(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        lifecycle.confirm()
        lifecycle.complete()
        with self.assertRaises(InvalidTransition):
            lifecycle.cancel()
        self.assertEqual(lifecycle.status, BookingStatus.COMPLETED)

    def test_complete_requires_confirmation(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        self.assertFalse(lifecycle.can(BookingAction.COMPLETE))
        with self.assertRaises(InvalidTransition):
            lifecycle.complete()

    def test_confirmed_booking_can_be_cancelled_by_farmer(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        lifecycle.confirm()
        booking = lifecycle.cancel(ActorRole.FARMER, actor_id="farmer-7", reason="rain")
        self.assertEqual(booking.booking_status, BookingStatus.CANCELLED)
        self.assertEqual(lifecycle.events[-1].data["reason"], "rain")

    def test_farmer_cannot_confirm(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        with self.assertRaises(InvalidTransition) as ctx:
            lifecycle.apply(BookingAction.CONFIRM, ActorRole.FARMER)
        self.assertEqual(ctx.exception.details["action"], "confirm")
        self.assertEqual(lifecycle.events, [])

    def test_every_transition_emits_event(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        later = NOW + timedelta(hours=1)
        lifecycle.confirm(actor_id="v1", now=later)
        lifecycle.complete(actor_id="v1", now=later + timedelta(hours=8))

        self.assertEqual(
            [event.event_type for event in lifecycle.events],
            ["booking.confirmed", "booking.completed"],
        )
        self.assertEqual(lifecycle.events[0].from_status, "pending")
        self.assertEqual(lifecycle.events[0].actor, "v1")
        self.assertEqual(lifecycle.booking.updated_at, later + timedelta(hours=8))

    def test_payment_is_independent_of_status(self) -> None:
        lifecycle = BookingLifecycle(_booking()[0])
        lifecycle.record_payment(PaymentStatus.PAID, reference="upi-123")
        self.assertEqual(lifecycle.status, BookingStatus.PENDING)
        lifecycle.cancel()
        booking = lifecycle.record_payment("failed")
        self.assertEqual(booking.payment_status, PaymentStatus.FAILED)
        self.assertEqual(
            [event.event_type for event in lifecycle.events],
            ["payment.paid", "booking.cancelled", "payment.failed"],
        )
        self.assertEqual(lifecycle.events[0].data["reference"], "upi-123")

    def test_completed_unpaid_bookings_are_flagged(self) -> None:
        unpaid = BookingLifecycle(_booking("b2", date(2025, 6, 3))[0])
        unpaid.confirm()
        unpaid.complete()
        paid = BookingLifecycle(_booking("b1")[0])
        paid.confirm()
        paid.complete()
        paid.record_payment(PaymentStatus.PAID)
        open_booking = _booking("b3")[0]

        flagged = find_payment_anomalies([unpaid.booking, paid.booking, open_booking])

        self.assertEqual([item.booking_id for item in flagged], ["b2"])


if __name__ == "__main__":
    unittest.main()
