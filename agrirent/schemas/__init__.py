from .models import (
    Actor,
    AvailabilityWindow,
    BlockedDatesUpdate,
    Booking,
    BookingEvent,
    BookingRequest,
    CancelRequest,
    CapacityCheck,
    DateToggle,
    EquipmentOffering,
    EquipmentStatusUpdate,
    FarmerRequest,
    MatchResult,
    OperatingDay,
    OperatingDayUpdate,
    PaymentUpdate,
    PriceProposal,
    PricingAdvice,
    PricingRequest,
    PricingSuggestion,
    ProposalConfirmation,
    VendorProfile,
    VendorStatusUpdate,
)

__all__ = [
    "Actor",
    "AvailabilityWindow",
    "BlockedDatesUpdate",
    "Booking",
    "BookingEvent",
    "BookingRequest",
    "CancelRequest",
    "CapacityCheck",
    "DateToggle",
    "EquipmentOffering",
    "EquipmentStatusUpdate",
    "FarmerRequest",
    "MatchResult",
    "OperatingDay",
    "OperatingDayUpdate",
    "PaymentUpdate",
    "PriceProposal",
    "PricingAdvice",
    "PricingRequest",
    "PricingSuggestion",
    "ProposalConfirmation",
    "VendorProfile",
    "VendorStatusUpdate",
]
