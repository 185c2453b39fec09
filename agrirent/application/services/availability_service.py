from __future__ import annotations

from datetime import date, time
from threading import Lock
from typing import Iterable, Optional
from weakref import WeakValueDictionary

from ...domain.availability import AvailabilityCalendar
from ...infra.availability_store import AvailabilityStore
from ...observability.logging_utils import log_event
from ...schemas import AvailabilityWindow
from .vendor_service import VendorService


class AvailabilityService:
    """Vendor calendars. Writes are last-writer-wins per vendor."""

    def __init__(self, store: AvailabilityStore, vendors: VendorService) -> None:
        self._store = store
        self._vendors = vendors
        self._locks: "WeakValueDictionary[str, Lock]" = WeakValueDictionary()
        self._locks_guard = Lock()

    def _lock_for(self, vendor_id: str) -> Lock:
        with self._locks_guard:
            lock = self._locks.get(vendor_id)
            if lock is None:
                lock = Lock()
                self._locks[vendor_id] = lock
            return lock

    def calendar(self, vendor_id: str) -> AvailabilityCalendar:
        self._vendors.get_vendor(vendor_id)
        return self._store.load(vendor_id)

    def get_calendar(self, vendor_id: str) -> AvailabilityWindow:
        return self.calendar(vendor_id).to_window()

    def toggle_blocked(self, vendor_id: str, day: date) -> bool:
        with self._lock_for(vendor_id):
            calendar = self.calendar(vendor_id)
            blocked = calendar.toggle_blocked(day)
            self._store.save(calendar)
        log_event(
            "availability_date_toggled",
            vendor_id=vendor_id,
            day=day.isoformat(),
            blocked=blocked,
        )
        return blocked

    def set_blocked_dates(self, vendor_id: str, days: Iterable[date]) -> AvailabilityWindow:
        with self._lock_for(vendor_id):
            calendar = self.calendar(vendor_id)
            calendar.set_blocked_dates(days)
            self._store.save(calendar)
        log_event(
            "availability_dates_replaced",
            vendor_id=vendor_id,
            blocked_count=len(calendar.blocked_dates()),
        )
        return calendar.to_window()

    def set_operating_day(
        self,
        vendor_id: str,
        day_of_week: int,
        *,
        enabled: bool,
        start_time: Optional[time] = None,
        end_time: Optional[time] = None,
    ) -> AvailabilityWindow:
        with self._lock_for(vendor_id):
            calendar = self.calendar(vendor_id)
            calendar.set_operating_day(day_of_week, enabled, start_time, end_time)
            self._store.save(calendar)
        current = calendar.operating_day(day_of_week)
        log_event(
            "availability_hours_changed",
            vendor_id=vendor_id,
            day_of_week=day_of_week,
            enabled=current.enabled,
            start_time=current.start_time.isoformat(),
            end_time=current.end_time.isoformat(),
        )
        return calendar.to_window()

    def is_open(self, vendor_id: str, day: date, at: Optional[time] = None) -> bool:
        calendar = self.calendar(vendor_id)
        if at is None:
            return calendar.is_open_on(day)
        return calendar.is_open(day, at)
