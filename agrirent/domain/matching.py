from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Iterable, List, Optional

from ..infra.config import AppConfig, get_config
from ..observability.otel import wrap_with_trace
from ..schemas import EquipmentOffering, FarmerRequest, MatchResult, VendorProfile
from .capacity import CapacityValidator
from .enums import TimeSlot
from .geo import proximity_fit, taluka_matches
from .normalizers import norm_text


@dataclass(frozen=True)
class MatchWeights:
    category: float = 0.5
    proximity: float = 0.3
    capacity: float = 0.2
    district_only_fit: float = 0.7
    capacity_decay_multiple: float = 3.0

    @classmethod
    def from_config(cls, cfg: Optional[AppConfig] = None) -> "MatchWeights":
        cfg = cfg or get_config()
        return cls(
            category=cfg.match_category_weight,
            proximity=cfg.match_proximity_weight,
            capacity=cfg.match_capacity_weight,
            district_only_fit=cfg.match_district_only_fit,
            capacity_decay_multiple=cfg.match_capacity_decay_multiple,
        )


def decayed_fit(land_size_acres: float, capacity: float, decay_multiple: float) -> float:
    """1.0 up to ``capacity``, falling linearly to 0.0 at ``decay_multiple`` x capacity."""
    if capacity <= 0:
        return 0.0
    if land_size_acres <= capacity:
        return 1.0
    ceiling = capacity * decay_multiple
    if land_size_acres >= ceiling:
        return 0.0
    return 1.0 - (land_size_acres - capacity) / (ceiling - capacity)


class MatchScorer:
    """Rank vendors for a farmer request by category, proximity and capacity fit."""

    def __init__(
        self,
        weights: Optional[MatchWeights] = None,
        capacity_validator: Optional[CapacityValidator] = None,
        max_workers: int = 1,
    ) -> None:
        self._weights = weights or MatchWeights.from_config()
        self._capacity = capacity_validator or CapacityValidator()
        self._max_workers = max(1, int(max_workers))

    def matching_offerings(
        self, request: FarmerRequest, vendor: VendorProfile
    ) -> List[EquipmentOffering]:
        wanted = norm_text(request.service_needed)
        return [item for item in vendor.equipments if norm_text(item.category) == wanted]

    def plausible_capacity(self, offering: EquipmentOffering) -> Optional[float]:
        """
        Acres one offering can realistically cover in a day, or None when unknown.

        Capacity-checked categories are clipped to what their working hours
        allow; a missing claim falls back to that ceiling.
        """
        claimed = offering.capacity_per_day or None
        if not self._capacity.is_capacity_checked(offering.category):
            return claimed
        slots = offering.preferred_time_slots or [TimeSlot.ANY_TIME]
        ceiling = self._capacity.max_plausible_capacity(offering.category, slots)
        if claimed is None:
            return ceiling
        if offering.preferred_time_slots and ceiling is not None:
            return min(claimed, ceiling)
        return claimed

    def capacity_fit(
        self, request: FarmerRequest, offerings: Iterable[EquipmentOffering]
    ) -> float:
        best = 0.0
        for offering in offerings:
            capacity = self.plausible_capacity(offering)
            if capacity is None:
                fit = 1.0
            else:
                fit = decayed_fit(
                    request.land_size_acres,
                    capacity,
                    self._weights.capacity_decay_multiple,
                )
            best = max(best, fit)
        return best

    def score_vendor(
        self, request: FarmerRequest, vendor: VendorProfile
    ) -> Optional[MatchResult]:
        offerings = self.matching_offerings(request, vendor)
        if not offerings:
            return None
        category = 1.0
        proximity = proximity_fit(
            vendor, request, district_only_fit=self._weights.district_only_fit
        )
        capacity = self.capacity_fit(request, offerings)
        score = (
            category * self._weights.category
            + proximity * self._weights.proximity
            + capacity * self._weights.capacity
        )
        score = round(min(1.0, max(0.0, score)), 4)
        return MatchResult(
            vendor_id=vendor.vendor_id,
            vendor_name=vendor.vendor_name,
            equipment_ids=[item.equipment_id for item in offerings],
            suggested_equipment=offerings,
            match_score=score,
            reasoning=self._reasoning(request, vendor, offerings, proximity, capacity),
            category_fit=category,
            proximity_fit=proximity,
            capacity_fit=round(capacity, 4),
        )

    def match(
        self, request: FarmerRequest, vendors: Iterable[VendorProfile]
    ) -> List[MatchResult]:
        candidates = list(vendors)
        if self._max_workers > 1 and len(candidates) > 1:
            score = wrap_with_trace(self.score_vendor)
            with ThreadPoolExecutor(max_workers=self._max_workers) as executor:
                futures = [executor.submit(score, request, v) for v in candidates]
                scored = [future.result() for future in futures]
        else:
            scored = [self.score_vendor(request, vendor) for vendor in candidates]
        results = [item for item in scored if item is not None]
        results.sort(key=lambda item: (-item.match_score, item.vendor_id))
        return results

    def _reasoning(
        self,
        request: FarmerRequest,
        vendor: VendorProfile,
        offerings: List[EquipmentOffering],
        proximity: float,
        capacity: float,
    ) -> str:
        names = ", ".join(item.name or item.equipment_id for item in offerings)
        parts = [f"Offers {request.service_needed}: {names}."]
        if proximity == 0.0:
            parts.append(f"Does not serve {request.district}.")
        elif taluka_matches(vendor, request):
            parts.append(f"Serves {vendor.taluka}, {vendor.district}.")
        else:
            parts.append(f"Serves {vendor.district} district.")
        if capacity >= 1.0:
            parts.append(
                f"Can cover {request.land_size_acres:g} acres within a working day."
            )
        elif capacity > 0.0:
            parts.append(
                f"{request.land_size_acres:g} acres likely needs more than one day."
            )
        else:
            parts.append(
                f"{request.land_size_acres:g} acres is far beyond daily capacity."
            )
        return " ".join(parts)
