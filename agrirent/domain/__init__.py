from __future__ import annotations

from typing import Any


_EXPORTS = {
    "AvailabilityCalendar": ".availability",
    "BookingLifecycle": ".booking",
    "CapacityPolicy": ".capacity",
    "CapacityValidator": ".capacity",
    "MatchScorer": ".matching",
    "MatchWeights": ".matching",
    "find_payment_anomalies": ".booking",
    "is_serviceable": ".geo",
    "new_booking": ".booking",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    module_name = _EXPORTS.get(name)
    if module_name is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    from importlib import import_module

    return getattr(import_module(module_name, __name__), name)
