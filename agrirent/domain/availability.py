from __future__ import annotations

from datetime import date, time
from typing import Dict, Iterable, List, Optional, Set

from ..schemas import AvailabilityWindow, OperatingDay
from .errors import InvalidWindow, ValidationError


DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]
DEFAULT_START = time(9, 0)
DEFAULT_END = time(17, 0)


def default_operating_days() -> List[OperatingDay]:
    """Monday to Friday, 09:00-17:00; weekends closed."""
    return [
        OperatingDay(
            day_of_week=day,
            enabled=day < 5,
            start_time=DEFAULT_START,
            end_time=DEFAULT_END,
        )
        for day in range(7)
    ]


class AvailabilityCalendar:
    """
    A vendor's blocked dates and weekly operating hours.

    Only the owning vendor mutates it; concurrent edits resolve as
    last-writer-wins when the calendar is saved.
    """

    def __init__(
        self,
        vendor_id: str,
        blocked_dates: Optional[Iterable[date]] = None,
        operating_days: Optional[Iterable[OperatingDay]] = None,
    ) -> None:
        self.vendor_id = vendor_id
        self._blocked: Set[date] = set(blocked_dates or [])
        self._days: Dict[int, OperatingDay] = {
            day.day_of_week: day for day in default_operating_days()
        }
        for day in operating_days or []:
            self._days[day.day_of_week] = day.model_copy()

    @classmethod
    def from_window(cls, window: AvailabilityWindow) -> "AvailabilityCalendar":
        return cls(
            window.vendor_id,
            blocked_dates=window.blocked_dates,
            operating_days=window.operating_days,
        )

    def to_window(self) -> AvailabilityWindow:
        return AvailabilityWindow(
            vendor_id=self.vendor_id,
            blocked_dates=self.blocked_dates(),
            operating_days=self.operating_days(),
        )

    def toggle_blocked(self, day: date) -> bool:
        """Flip the blocked state of ``day``; returns True when it is now blocked."""
        if day in self._blocked:
            self._blocked.discard(day)
            return False
        self._blocked.add(day)
        return True

    def set_blocked_dates(self, days: Iterable[date]) -> None:
        self._blocked = set(days)

    def is_blocked(self, day: date) -> bool:
        return day in self._blocked

    def blocked_dates(self) -> List[date]:
        return sorted(self._blocked)

    def operating_days(self) -> List[OperatingDay]:
        return [self._days[day].model_copy() for day in range(7)]

    def operating_day(self, day_of_week: int) -> OperatingDay:
        if day_of_week not in self._days:
            raise ValidationError(
                f"day_of_week must be 0-6, got {day_of_week}", fields=["day_of_week"]
            )
        return self._days[day_of_week].model_copy()

    def set_operating_day(
        self,
        day_of_week: int,
        enabled: bool,
        start: Optional[time] = None,
        end: Optional[time] = None,
    ) -> OperatingDay:
        current = self.operating_day(day_of_week)
        start = current.start_time if start is None else start
        end = current.end_time if end is None else end
        if enabled and start >= end:
            raise InvalidWindow(
                f"{DAY_NAMES[day_of_week]}: start {start.isoformat()} must be "
                f"before end {end.isoformat()}",
                day_of_week=day_of_week,
            )
        updated = OperatingDay(
            day_of_week=day_of_week, enabled=enabled, start_time=start, end_time=end
        )
        self._days[day_of_week] = updated
        return updated.model_copy()

    def is_open(self, day: date, at: time) -> bool:
        if day in self._blocked:
            return False
        window = self._days[day.weekday()]
        if not window.enabled:
            return False
        return window.start_time <= at < window.end_time

    def is_open_on(self, day: date) -> bool:
        """Open at some point of ``day``."""
        if day in self._blocked:
            return False
        window = self._days[day.weekday()]
        return window.enabled and window.start_time < window.end_time
