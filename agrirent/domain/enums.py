from enum import Enum


class PricingUnit(str, Enum):
    PER_ACRE = "PerAcre"
    PER_DAY = "PerDay"
    PER_HOUR = "PerHour"


class EquipmentStatus(str, Enum):
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    MAINTENANCE = "maintenance"


class VendorStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"


class TimeSlot(str, Enum):
    MORNING = "Morning"
    EVENING = "Evening"
    ANY_TIME = "AnyTime"


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class BookingAction(str, Enum):
    CONFIRM = "confirm"
    CANCEL = "cancel"
    COMPLETE = "complete"


class ActorRole(str, Enum):
    VENDOR = "vendor"
    FARMER = "farmer"
