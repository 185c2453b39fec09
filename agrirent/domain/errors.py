from __future__ import annotations

from typing import Any, Dict, List, Optional


class AgriRentError(Exception):
    """Base class for recoverable domain errors."""

    code = "agrirent_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class ValidationError(AgriRentError):
    """Malformed or missing request fields, rejected before any engine logic."""

    code = "validation_error"

    def __init__(self, message: str, fields: Optional[List[str]] = None) -> None:
        super().__init__(message, fields=list(fields or []))
        self.fields = list(fields or [])


class CapacityExceeded(AgriRentError):
    code = "capacity_exceeded"

    def __init__(self, claimed: float, max_allowed: float) -> None:
        super().__init__(
            f"claimed capacity {claimed:g} acres/day exceeds the maximum of "
            f"{max_allowed:g} acres/day for the selected working hours",
            claimed=claimed,
            max_allowed=max_allowed,
        )
        self.claimed = claimed
        self.max_allowed = max_allowed


class TimeSelectionRequired(AgriRentError):
    code = "time_selection_required"

    def __init__(self, category: str) -> None:
        super().__init__(
            f"select working hours before declaring a capacity for {category!r}",
            category=category,
        )


class InvalidWindow(AgriRentError):
    code = "invalid_window"


class InvalidTransition(AgriRentError):
    code = "invalid_transition"


class AdvisorUnavailable(AgriRentError):
    code = "advisor_unavailable"


class NotFound(AgriRentError):
    code = "not_found"


class ConcurrentUpdate(AgriRentError):
    code = "concurrent_update"
