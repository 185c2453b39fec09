from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Set

from ..infra.config import AppConfig, get_config
from ..schemas import CapacityCheck
from .enums import TimeSlot
from .normalizers import EnumNormalizer, norm_text, normalize_time_slots


@dataclass(frozen=True)
class CapacityPolicy:
    """Working-hour windows and throughput ceilings for capacity checks."""

    acres_per_hour: float = 5.0
    morning_hours: float = 3.0
    evening_hours: float = 3.0
    anytime_hours: float = 6.0
    checked_keywords: Sequence[str] = ("drone",)

    @classmethod
    def from_config(cls, cfg: Optional[AppConfig] = None) -> "CapacityPolicy":
        cfg = cfg or get_config()
        return cls(
            acres_per_hour=cfg.drone_acres_per_hour,
            morning_hours=cfg.morning_window_hours,
            evening_hours=cfg.evening_window_hours,
            anytime_hours=cfg.anytime_window_hours,
            checked_keywords=tuple(cfg.capacity_checked_keywords),
        )


def _slot_set(time_slots: Optional[Iterable[object]]) -> Set[TimeSlot]:
    # unrecognised labels contribute no hours
    slots = set()
    for value in normalize_time_slots(time_slots):
        slot = EnumNormalizer.coerce(TimeSlot, value)
        if slot is not None:
            slots.add(slot)
    return slots


class CapacityValidator:
    def __init__(self, policy: Optional[CapacityPolicy] = None) -> None:
        self._policy = policy or CapacityPolicy.from_config()

    @property
    def policy(self) -> CapacityPolicy:
        return self._policy

    def is_capacity_checked(self, category: str) -> bool:
        key = norm_text(category)
        return any(keyword in key for keyword in self._policy.checked_keywords)

    def working_hours(self, time_slots: Optional[Iterable[object]]) -> float:
        # AnyTime only counts when it is the sole choice, otherwise the
        # same hours would be counted twice.
        slots = _slot_set(time_slots)
        hours = 0.0
        if TimeSlot.MORNING in slots:
            hours += self._policy.morning_hours
        if TimeSlot.EVENING in slots:
            hours += self._policy.evening_hours
        if TimeSlot.ANY_TIME in slots and hours == 0.0:
            hours = self._policy.anytime_hours
        return hours

    def max_plausible_capacity(
        self, category: str, time_slots: Optional[Iterable[object]]
    ) -> Optional[float]:
        """Acres per day the category can cover in the chosen hours; None if unchecked."""
        if not self.is_capacity_checked(category):
            return None
        return self.working_hours(time_slots) * self._policy.acres_per_hour

    def validate(
        self,
        claimed_acres_per_day: Optional[float],
        category: str,
        time_slots: Optional[Iterable[object]],
    ) -> CapacityCheck:
        claimed = float(claimed_acres_per_day or 0.0)
        if claimed == 0.0 or not self.is_capacity_checked(category):
            return CapacityCheck(outcome="ok", category=category, claimed=claimed)
        if not _slot_set(time_slots):
            return CapacityCheck(
                outcome="time_selection_required", category=category, claimed=claimed
            )
        max_allowed = self.max_plausible_capacity(category, time_slots) or 0.0
        if claimed > max_allowed:
            return CapacityCheck(
                outcome="capacity_exceeded",
                category=category,
                claimed=claimed,
                max_allowed=max_allowed,
            )
        return CapacityCheck(
            outcome="ok", category=category, claimed=claimed, max_allowed=max_allowed
        )
