from __future__ import annotations

from datetime import date, datetime, time
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from ..domain.enums import (
    ActorRole,
    BookingStatus,
    EquipmentStatus,
    PaymentStatus,
    PricingUnit,
    TimeSlot,
    VendorStatus,
)
from ..domain.errors import CapacityExceeded, TimeSelectionRequired
from ..domain.normalizers import EnumNormalizer, normalize_time_slots


class FarmerRequest(BaseModel):
    """What a farmer is looking for. Built per search and never persisted."""

    soil_type: str = Field(..., description="e.g. Clay, Loamy, Black Cotton Soil")
    crop_type: str = Field(..., description="e.g. Cotton, Sugarcane, Wheat")
    district: str = Field(..., min_length=1)
    taluka: Optional[str] = None
    land_size_acres: float = Field(..., gt=0)
    service_needed: str = Field(
        ...,
        min_length=1,
        description="Equipment category or service, e.g. Drone Service, Tractor",
    )
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class EquipmentOffering(BaseModel):
    """A single piece of equipment or service listed by a vendor."""

    equipment_id: str = Field(..., min_length=1)
    category: str = Field(..., min_length=1)
    name: Optional[str] = Field(default=None, description="Brand and model, e.g. Mahindra JIVO 245 DI")
    brand: Optional[str] = None
    model: Optional[str] = None
    capacity_per_day: Optional[float] = Field(
        default=None, ge=0, description="Acres the equipment can cover in one working day."
    )
    price_per_unit: float = Field(default=0.0, ge=0)
    pricing_unit: PricingUnit = PricingUnit.PER_ACRE
    status: EquipmentStatus = EquipmentStatus.AVAILABLE
    preferred_time_slots: List[TimeSlot] = Field(default_factory=list)

    @field_validator("pricing_unit", mode="before")
    @classmethod
    def _norm_pricing_unit(cls, v):
        return EnumNormalizer.normalize(PricingUnit, v)

    @field_validator("preferred_time_slots", mode="before")
    @classmethod
    def _norm_time_slots(cls, v):
        return normalize_time_slots(v)

    @property
    def price_per_day_estimate(self) -> Optional[float]:
        if self.pricing_unit == PricingUnit.PER_DAY:
            return self.price_per_unit
        if self.pricing_unit == PricingUnit.PER_ACRE and self.capacity_per_day:
            return self.capacity_per_day * self.price_per_unit
        return None


class VendorProfile(BaseModel):
    """Vendor as seen by the engine. Vendors are never hard-deleted."""

    vendor_id: str = Field(..., min_length=1)
    vendor_name: str
    district: str
    taluka: Optional[str] = None
    serviceable_radius_km: Optional[float] = Field(default=None, gt=0)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    owner_name: Optional[str] = None
    pincode: Optional[str] = None
    status: VendorStatus = VendorStatus.ACTIVE
    equipments: List[EquipmentOffering] = Field(default_factory=list)

    @field_validator("equipments", mode="after")
    @classmethod
    def _unique_equipment_ids(cls, value: List[EquipmentOffering]) -> List[EquipmentOffering]:
        seen = set()
        for item in value:
            if item.equipment_id in seen:
                raise ValueError(f"duplicate equipment_id {item.equipment_id!r}")
            seen.add(item.equipment_id)
        return value

    def find_equipment(self, equipment_id: str) -> Optional[EquipmentOffering]:
        for item in self.equipments:
            if item.equipment_id == equipment_id:
                return item
        return None


class MatchResult(BaseModel):
    """Ranked vendor suggestion for a farmer request."""

    vendor_id: str
    vendor_name: str
    equipment_ids: List[str] = Field(default_factory=list)
    suggested_equipment: List[EquipmentOffering] = Field(default_factory=list)
    match_score: float = Field(..., ge=0.0, le=1.0)
    reasoning: str = ""
    category_fit: float = 0.0
    proximity_fit: float = 0.0
    capacity_fit: float = 0.0


class CapacityCheck(BaseModel):
    """Outcome of a capacity plausibility check, returned as a value."""

    outcome: Literal["ok", "capacity_exceeded", "time_selection_required"]
    category: str
    claimed: float = 0.0
    max_allowed: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.outcome == "ok"

    def raise_for_status(self) -> None:
        if self.outcome == "capacity_exceeded":
            raise CapacityExceeded(self.claimed, self.max_allowed or 0.0)
        if self.outcome == "time_selection_required":
            raise TimeSelectionRequired(self.category)


class OperatingDay(BaseModel):
    day_of_week: int = Field(..., ge=0, le=6, description="0=Monday ... 6=Sunday")
    enabled: bool = False
    start_time: time = time(9, 0)
    end_time: time = time(17, 0)


class AvailabilityWindow(BaseModel):
    """Persisted shape of a vendor's calendar."""

    vendor_id: str
    blocked_dates: List[date] = Field(default_factory=list)
    operating_days: List[OperatingDay] = Field(default_factory=list)


class Booking(BaseModel):
    booking_id: str
    vendor_id: str
    equipment_id: str
    farmer_ref: str
    booking_date: date
    start_time: Optional[time] = None
    duration: str = Field(default="", description='Free text such as "4 hours" or "Full Day (8 acres)"')
    total_amount: float = Field(default=0.0, ge=0)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    booking_status: BookingStatus = BookingStatus.PENDING
    created_at: datetime
    updated_at: datetime


class BookingRequest(BaseModel):
    """Farmer's request for a slot on a vendor's equipment."""

    vendor_id: str = Field(..., min_length=1)
    equipment_id: str = Field(..., min_length=1)
    farmer_ref: str = Field(..., min_length=1)
    booking_date: date
    start_time: Optional[time] = None
    duration: str = ""
    total_amount: float = Field(default=0.0, ge=0)


class BookingEvent(BaseModel):
    """Append-only audit record of a booking change."""

    event_id: str
    booking_id: str
    event_type: str
    actor: Optional[str] = None
    from_status: Optional[str] = None
    to_status: Optional[str] = None
    occurred_at: datetime
    data: Dict[str, Any] = Field(default_factory=dict)


class Actor(BaseModel):
    """Opaque authenticated identity handed over by the auth layer."""

    actor_id: str
    role: ActorRole


class PricingRequest(BaseModel):
    """Inputs sent to the pricing oracle."""

    equipment_type: str = Field(..., min_length=1)
    acreage: float = Field(default=0.0, ge=0)
    pricing_unit: PricingUnit
    comparable_listings: str = ""
    travel_charge: Optional[float] = Field(default=None, ge=0)
    additional_considerations: Optional[str] = None
    vendor_id: Optional[str] = None
    equipment_id: Optional[str] = None

    @field_validator("pricing_unit", mode="before")
    @classmethod
    def _norm_pricing_unit(cls, v):
        return EnumNormalizer.normalize(PricingUnit, v)


class PricingSuggestion(BaseModel):
    suggested_price: float = Field(..., ge=0)
    reasoning: str = ""
    effective_pricing_unit: PricingUnit


class PriceProposal(BaseModel):
    """A suggestion waiting for the vendor to accept it. Never applied on its own."""

    proposal_id: str
    vendor_id: str
    equipment_id: str
    suggestion: PricingSuggestion
    status: Literal["proposed", "confirmed"] = "proposed"
    created_at: datetime
    confirmed_at: Optional[datetime] = None
    confirmed_price: Optional[float] = None


class PricingAdvice(BaseModel):
    """What callers get back from the advisor: a suggestion or nothing."""

    available: bool
    suggestion: Optional[PricingSuggestion] = None
    proposal_id: Optional[str] = None
    message: str = ""


class BlockedDatesUpdate(BaseModel):
    blocked_dates: List[date] = Field(default_factory=list)


class DateToggle(BaseModel):
    day: date


class OperatingDayUpdate(BaseModel):
    enabled: bool
    start_time: Optional[time] = None
    end_time: Optional[time] = None


class EquipmentStatusUpdate(BaseModel):
    status: EquipmentStatus


class VendorStatusUpdate(BaseModel):
    status: VendorStatus


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class PaymentUpdate(BaseModel):
    payment_status: PaymentStatus
    reference: Optional[str] = None


class ProposalConfirmation(BaseModel):
    price: Optional[float] = Field(
        default=None, ge=0, description="Vendor-adjusted price; defaults to the suggestion."
    )
