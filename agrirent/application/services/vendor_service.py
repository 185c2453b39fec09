from __future__ import annotations

import uuid
from typing import List, Optional

from ...domain.capacity import CapacityValidator
from ...domain.enums import EquipmentStatus, PricingUnit, VendorStatus
from ...domain.errors import NotFound, ValidationError
from ...infra.vendor_directory import VendorDirectory
from ...observability.logging_utils import log_event
from ...schemas import CapacityCheck, EquipmentOffering, VendorProfile


class VendorService:
    """Vendor registration and listing edits. Nothing is ever hard-deleted."""

    def __init__(
        self,
        directory: VendorDirectory,
        capacity_validator: Optional[CapacityValidator] = None,
    ) -> None:
        self._directory = directory
        self._capacity = capacity_validator or CapacityValidator()

    def register_vendor(self, profile: VendorProfile) -> VendorProfile:
        if self._directory.get(profile.vendor_id) is not None:
            raise ValidationError(
                f"vendor {profile.vendor_id} already exists", fields=["vendor_id"]
            )
        for offering in profile.equipments:
            self.check_capacity(offering).raise_for_status()
        self._directory.save(profile)
        log_event(
            "vendor_registered",
            vendor_id=profile.vendor_id,
            district=profile.district,
            equipment_count=len(profile.equipments),
        )
        return profile

    def get_vendor(self, vendor_id: str) -> VendorProfile:
        profile = self._directory.get(vendor_id)
        if profile is None:
            raise NotFound(f"vendor {vendor_id} not found", vendor_id=vendor_id)
        return profile

    def search_vendors(
        self,
        *,
        district: Optional[str] = None,
        equipment_category: Optional[str] = None,
        available_only: bool = False,
    ) -> List[VendorProfile]:
        return self._directory.query(
            district=district,
            equipment_category=equipment_category,
            available_only=available_only,
        )

    def check_capacity(self, offering: EquipmentOffering) -> CapacityCheck:
        return self._capacity.validate(
            offering.capacity_per_day,
            offering.category,
            offering.preferred_time_slots,
        )

    def add_equipment(self, vendor_id: str, offering: EquipmentOffering) -> VendorProfile:
        profile = self.get_vendor(vendor_id)
        if not offering.equipment_id:
            offering = offering.model_copy(update={"equipment_id": uuid.uuid4().hex})
        if profile.find_equipment(offering.equipment_id) is not None:
            raise ValidationError(
                f"equipment {offering.equipment_id} already listed by {vendor_id}",
                fields=["equipment_id"],
            )
        check = self.check_capacity(offering)
        if not check.ok:
            log_event(
                "equipment_capacity_rejected",
                vendor_id=vendor_id,
                equipment_id=offering.equipment_id,
                outcome=check.outcome,
                claimed=check.claimed,
                max_allowed=check.max_allowed,
            )
        check.raise_for_status()
        updated = profile.model_copy(update={"equipments": [*profile.equipments, offering]})
        self._directory.save(updated)
        log_event(
            "equipment_added",
            vendor_id=vendor_id,
            equipment_id=offering.equipment_id,
            category=offering.category,
        )
        return updated

    def _replace_equipment(
        self, vendor_id: str, equipment_id: str, **changes
    ) -> EquipmentOffering:
        profile = self.get_vendor(vendor_id)
        current = profile.find_equipment(equipment_id)
        if current is None:
            raise NotFound(
                f"equipment {equipment_id} not found for vendor {vendor_id}",
                vendor_id=vendor_id,
                equipment_id=equipment_id,
            )
        replacement = current.model_copy(update=changes)
        equipments = [
            replacement if item.equipment_id == equipment_id else item
            for item in profile.equipments
        ]
        self._directory.save(profile.model_copy(update={"equipments": equipments}))
        return replacement

    def set_equipment_status(
        self, vendor_id: str, equipment_id: str, status: EquipmentStatus
    ) -> EquipmentOffering:
        status = EquipmentStatus(status)
        updated = self._replace_equipment(vendor_id, equipment_id, status=status)
        log_event(
            "equipment_status_changed",
            vendor_id=vendor_id,
            equipment_id=equipment_id,
            status=status.value,
        )
        return updated

    def update_equipment_price(
        self,
        vendor_id: str,
        equipment_id: str,
        price: float,
        pricing_unit: PricingUnit,
    ) -> EquipmentOffering:
        if price < 0:
            raise ValidationError("price must not be negative", fields=["price"])
        updated = self._replace_equipment(
            vendor_id,
            equipment_id,
            price_per_unit=float(price),
            pricing_unit=PricingUnit(pricing_unit),
        )
        log_event(
            "equipment_price_updated",
            vendor_id=vendor_id,
            equipment_id=equipment_id,
            price=price,
            pricing_unit=updated.pricing_unit.value,
        )
        return updated

    def set_vendor_status(self, vendor_id: str, status: VendorStatus) -> VendorProfile:
        profile = self.get_vendor(vendor_id)
        updated = profile.model_copy(update={"status": VendorStatus(status)})
        self._directory.save(updated)
        log_event("vendor_status_changed", vendor_id=vendor_id, status=updated.status.value)
        return updated
