from __future__ import annotations

import math
from typing import Optional

from ..schemas import FarmerRequest, VendorProfile
from .normalizers import norm_text


EARTH_RADIUS_KM = 6371.0


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2) ** 2
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def distance_km(vendor: VendorProfile, request: FarmerRequest) -> Optional[float]:
    """Great-circle distance, or None when either side lacks coordinates."""
    coords = (vendor.latitude, vendor.longitude, request.latitude, request.longitude)
    if any(value is None for value in coords):
        return None
    return haversine(*coords)


def district_matches(vendor: VendorProfile, request: FarmerRequest) -> bool:
    district = norm_text(vendor.district)
    return bool(district) and district == norm_text(request.district)


def taluka_matches(vendor: VendorProfile, request: FarmerRequest) -> bool:
    vendor_taluka = norm_text(vendor.taluka)
    request_taluka = norm_text(request.taluka)
    return bool(vendor_taluka) and vendor_taluka == request_taluka


def is_serviceable(vendor: VendorProfile, request: FarmerRequest) -> bool:
    """
    Whether the vendor covers the farmer's location.

    District equality is the minimum bar. When the vendor declares a radius and
    both sides carry coordinates the farmer must also fall inside it; without
    coordinates the district check alone decides.
    """
    if not district_matches(vendor, request):
        return False
    if vendor.serviceable_radius_km is None:
        return True
    distance = distance_km(vendor, request)
    if distance is None:
        return True
    return distance <= vendor.serviceable_radius_km


def proximity_fit(
    vendor: VendorProfile,
    request: FarmerRequest,
    *,
    district_only_fit: float = 0.7,
) -> float:
    if not is_serviceable(vendor, request):
        return 0.0
    if taluka_matches(vendor, request):
        return 1.0
    return district_only_fit
