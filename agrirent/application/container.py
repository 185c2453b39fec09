from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..domain.capacity import CapacityValidator
from ..domain.matching import MatchScorer
from ..infra.availability_store import AvailabilityStore
from ..infra.booking_store import BookingRepository
from ..infra.config import get_config
from ..infra.document_store import DocumentStore, build_document_store
from ..infra.event_log import BookingEventLog
from ..infra.vendor_directory import VendorDirectory
from .services.availability_service import AvailabilityService
from .services.booking_service import BookingService
from .services.matching_service import MatchingService
from .services.pricing_service import Oracle, PricingAdvisor
from .services.vendor_service import VendorService


@dataclass
class Services:
    store: DocumentStore
    vendors: VendorService
    matching: MatchingService
    availability: AvailabilityService
    bookings: BookingService
    pricing: PricingAdvisor


def build_services(
    store: Optional[DocumentStore] = None,
    *,
    pricing_oracle: Optional[Oracle] = None,
) -> Services:
    cfg = get_config()
    store = store or build_document_store()
    capacity = CapacityValidator()
    directory = VendorDirectory(store)
    vendors = VendorService(directory, capacity)
    availability = AvailabilityService(AvailabilityStore(store), vendors)
    bookings = BookingService(
        BookingRepository(store),
        BookingEventLog(store),
        vendors,
        availability,
        max_retries=cfg.booking_cas_retries,
    )
    matching = MatchingService(
        directory,
        MatchScorer(capacity_validator=capacity, max_workers=cfg.match_max_workers),
    )
    pricing = PricingAdvisor(store, vendors, oracle=pricing_oracle)
    return Services(
        store=store,
        vendors=vendors,
        matching=matching,
        availability=availability,
        bookings=bookings,
        pricing=pricing,
    )
