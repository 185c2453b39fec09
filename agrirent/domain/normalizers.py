import re
from enum import Enum
from typing import Any, Iterable, List, Optional, Type

from .enums import PricingUnit, TimeSlot


def norm_text(value: Optional[str]) -> str:
    # trim, lowercase, collapse inner whitespace
    s = str(value or "").strip().lower()
    return re.sub(r"\s+", " ", s)


class EnumNormalizer:
    # one table per enum: alias -> canonical
    ALIASES: dict[Type[Enum], dict[str, str]] = {
        PricingUnit: {
            "per acre": "PerAcre",
            "per_acre": "PerAcre",
            "peracre": "PerAcre",
            "acre": "PerAcre",
            "per day": "PerDay",
            "per_day": "PerDay",
            "perday": "PerDay",
            "day": "PerDay",
            "per hour": "PerHour",
            "per_hour": "PerHour",
            "perhour": "PerHour",
            "hour": "PerHour",
        },
        TimeSlot: {
            "morning": "Morning",
            "evening": "Evening",
            "anytime": "AnyTime",
            "any time": "AnyTime",
            "any_time": "AnyTime",
        },
    }

    @classmethod
    def normalize(cls, enum_cls: Type[Enum], value: Any) -> Any:
        if value is None:
            return value
        if isinstance(value, enum_cls):
            return value.value
        key = norm_text(value)
        aliases = cls.ALIASES.get(enum_cls, {})
        # unknown values pass through so pydantic reports them
        return aliases.get(key, value)

    @classmethod
    def coerce(cls, enum_cls: Type[Enum], value: Any) -> Optional[Enum]:
        """Return the enum member for ``value`` or None when it is not recognised."""
        normalized = cls.normalize(enum_cls, value)
        if normalized is None:
            return None
        try:
            return enum_cls(normalized)
        except ValueError:
            return None


def normalize_time_slots(values: Any) -> List[str]:
    """
    Expand the listing form's slot choices into canonical TimeSlot values.

    ``Both`` stands for Morning plus Evening, a single string is accepted, and
    duplicates collapse.
    """
    if values is None:
        return []
    if isinstance(values, (str, TimeSlot)):
        values = [values]
    slots: List[str] = []
    for item in values:
        if isinstance(item, TimeSlot):
            expanded: Iterable[Any] = [item.value]
        elif norm_text(item) == "both":
            expanded = [TimeSlot.MORNING.value, TimeSlot.EVENING.value]
        else:
            expanded = [EnumNormalizer.normalize(TimeSlot, item)]
        for slot in expanded:
            if slot not in slots:
                slots.append(slot)
    return slots
