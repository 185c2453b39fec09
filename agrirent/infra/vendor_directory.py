"""Vendor profiles over the document store, with district/category pre-filtering."""

from __future__ import annotations

from typing import List, Optional

from ..domain.enums import EquipmentStatus, VendorStatus
from ..domain.normalizers import norm_text
from ..schemas import VendorProfile
from .document_store import DocumentStore


VENDOR_COLLECTION = "vendors"


def _to_document(profile: VendorProfile) -> dict:
    payload = profile.model_dump(mode="json")
    payload["district_key"] = norm_text(profile.district)
    return payload


def _coerce_profile(payload: dict) -> Optional[VendorProfile]:
    data = {k: v for k, v in payload.items() if k != "district_key"}
    try:
        return VendorProfile.model_validate(data)
    except ValueError:
        return None


class VendorDirectory:
    def __init__(self, store: DocumentStore) -> None:
        self._store = store

    def get(self, vendor_id: str) -> Optional[VendorProfile]:
        document = self._store.get(VENDOR_COLLECTION, vendor_id)
        if document is None:
            return None
        return _coerce_profile(document.data)

    def save(self, profile: VendorProfile) -> VendorProfile:
        self._store.put(VENDOR_COLLECTION, profile.vendor_id, _to_document(profile))
        return profile

    def query(
        self,
        *,
        district: Optional[str] = None,
        equipment_category: Optional[str] = None,
        available_only: bool = False,
        include_inactive: bool = False,
    ) -> List[VendorProfile]:
        """
        Candidate vendors for matching.

        ``available_only`` narrows each vendor's offerings to available
        equipment; a category filter keeps vendors offering that category.
        """
        filters = {}
        if district:
            filters["district_key"] = norm_text(district)
        wanted = norm_text(equipment_category) if equipment_category else None
        profiles: List[VendorProfile] = []
        for document in self._store.query(VENDOR_COLLECTION, filters):
            profile = _coerce_profile(document.data)
            if profile is None:
                continue
            if not include_inactive and profile.status != VendorStatus.ACTIVE:
                continue
            if available_only:
                profile = profile.model_copy(
                    update={
                        "equipments": [
                            item
                            for item in profile.equipments
                            if item.status == EquipmentStatus.AVAILABLE
                        ]
                    }
                )
            if wanted and not any(
                norm_text(item.category) == wanted for item in profile.equipments
            ):
                continue
            profiles.append(profile)
        return profiles
