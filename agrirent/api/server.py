from functools import lru_cache

import traceback
from contextlib import asynccontextmanager
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import List, Optional

from fastapi import Body, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..application.container import Services, build_services
from ..domain.enums import ActorRole, BookingStatus
from ..domain.errors import (
    AdvisorUnavailable,
    AgriRentError,
    ConcurrentUpdate,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ..infra.config import get_config
from ..observability.logging_utils import init_logging, log_event, trace_scope
from ..observability.otel import init_otel
from ..schemas import (
    Actor,
    AvailabilityWindow,
    BlockedDatesUpdate,
    Booking,
    BookingEvent,
    BookingRequest,
    CancelRequest,
    DateToggle,
    EquipmentOffering,
    EquipmentStatusUpdate,
    FarmerRequest,
    MatchResult,
    OperatingDayUpdate,
    PaymentUpdate,
    PricingAdvice,
    PricingRequest,
    ProposalConfirmation,
    VendorProfile,
    VendorStatusUpdate,
)


_STATUS_BY_ERROR = (
    (NotFound, 404),
    (InvalidTransition, 409),
    (ConcurrentUpdate, 409),
    (AdvisorUnavailable, 503),
)


@lru_cache(maxsize=1)
def get_services() -> Services:
    return build_services()


@asynccontextmanager
async def lifespan(_: FastAPI):
    cfg = get_config()
    init_logging(log_path=cfg.log_path)
    init_otel()
    try:
        _LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        _LOG_PATH.touch(exist_ok=True)
    except OSError:
        pass
    log_event("api_started", error_log=str(_LOG_PATH), store=cfg.document_store)
    yield


app = FastAPI(title="AgriRent Marketplace", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_PROJECT_ROOT = Path(__file__).resolve().parents[2]
_LOG_PATH = _PROJECT_ROOT / "api_errors.log"


def _append_error_log(message: str, tb: str = "") -> None:
    timestamp = datetime.now(timezone.utc).isoformat()
    try:
        with _LOG_PATH.open("a", encoding="utf-8") as handle:
            handle.write(f"[{timestamp}] {message}\n{tb}\n")
    except OSError:
        pass


def status_for(exc: AgriRentError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 422


@app.middleware("http")
async def _trace_requests(request: Request, call_next):
    with trace_scope(request.headers.get("X-Request-Id")) as trace_id:
        response = await call_next(request)
        response.headers["X-Request-Id"] = trace_id
        return response


@app.exception_handler(AgriRentError)
async def _domain_error_handler(request: Request, exc: AgriRentError):
    status = status_for(exc)
    log_event(
        "api_error",
        path=request.url.path,
        status=status,
        code=exc.code,
        error=exc.message,
    )
    return JSONResponse(status_code=status, content={"detail": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def _request_validation_handler(request: Request, exc: RequestValidationError):
    fields = sorted(
        {
            ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            for err in exc.errors()
        }
    )
    error = ValidationError(f"invalid request: {', '.join(fields)}", fields=fields)
    return await _domain_error_handler(request, error)


@app.exception_handler(Exception)
async def _unhandled_exception_handler(request: Request, exc: Exception):
    tb = traceback.format_exc()
    _append_error_log(f"Unhandled error at {request.url.path}: {exc}", tb)
    return JSONResponse(
        status_code=500,
        content={"detail": {"error": str(exc), "traceback": tb}},
    )


def _actor(actor_id: Optional[str], role: Optional[str]) -> Actor:
    if not actor_id or not role:
        raise ValidationError(
            "X-Actor-Id and X-Actor-Role headers are required",
            fields=["X-Actor-Id", "X-Actor-Role"],
        )
    try:
        return Actor(actor_id=actor_id, role=ActorRole(role.strip().lower()))
    except ValueError as exc:
        raise ValidationError(f"unknown actor role {role!r}", fields=["X-Actor-Role"]) from exc


@app.get("/health")
def health():
    cfg = get_config()
    return {"status": "ok", "llm": cfg.llm_provider, "store": cfg.document_store}


@app.post("/api/v1/match", response_model=List[MatchResult])
def match_vendors(request: FarmerRequest, limit: Optional[int] = Query(default=None, ge=1)):
    return get_services().matching.find_matches(request, limit=limit)


@app.post("/api/v1/vendors", response_model=VendorProfile, status_code=201)
def register_vendor(profile: VendorProfile):
    return get_services().vendors.register_vendor(profile)


@app.get("/api/v1/vendors", response_model=List[VendorProfile])
def search_vendors(
    district: Optional[str] = None,
    category: Optional[str] = None,
    available_only: bool = False,
):
    return get_services().vendors.search_vendors(
        district=district, equipment_category=category, available_only=available_only
    )


@app.get("/api/v1/vendors/{vendor_id}", response_model=VendorProfile)
def get_vendor(vendor_id: str):
    return get_services().vendors.get_vendor(vendor_id)


@app.put("/api/v1/vendors/{vendor_id}/status", response_model=VendorProfile)
def set_vendor_status(vendor_id: str, update: VendorStatusUpdate):
    return get_services().vendors.set_vendor_status(vendor_id, update.status)


@app.post(
    "/api/v1/vendors/{vendor_id}/equipment",
    response_model=VendorProfile,
    status_code=201,
)
def add_equipment(vendor_id: str, offering: EquipmentOffering):
    return get_services().vendors.add_equipment(vendor_id, offering)


@app.put(
    "/api/v1/vendors/{vendor_id}/equipment/{equipment_id}/status",
    response_model=EquipmentOffering,
)
def set_equipment_status(vendor_id: str, equipment_id: str, update: EquipmentStatusUpdate):
    return get_services().vendors.set_equipment_status(
        vendor_id, equipment_id, update.status
    )


@app.get("/api/v1/vendors/{vendor_id}/availability", response_model=AvailabilityWindow)
def get_availability(vendor_id: str):
    return get_services().availability.get_calendar(vendor_id)


@app.post("/api/v1/vendors/{vendor_id}/availability/toggle")
def toggle_blocked_date(vendor_id: str, toggle: DateToggle):
    blocked = get_services().availability.toggle_blocked(vendor_id, toggle.day)
    return {"vendor_id": vendor_id, "day": toggle.day.isoformat(), "blocked": blocked}


@app.put(
    "/api/v1/vendors/{vendor_id}/availability/blocked-dates",
    response_model=AvailabilityWindow,
)
def replace_blocked_dates(vendor_id: str, update: BlockedDatesUpdate):
    return get_services().availability.set_blocked_dates(vendor_id, update.blocked_dates)


@app.put(
    "/api/v1/vendors/{vendor_id}/availability/operating-days/{day_of_week}",
    response_model=AvailabilityWindow,
)
def set_operating_day(vendor_id: str, day_of_week: int, update: OperatingDayUpdate):
    return get_services().availability.set_operating_day(
        vendor_id,
        day_of_week,
        enabled=update.enabled,
        start_time=update.start_time,
        end_time=update.end_time,
    )


@app.get("/api/v1/vendors/{vendor_id}/availability/open")
def is_vendor_open(vendor_id: str, day: date, at: Optional[time] = None):
    is_open = get_services().availability.is_open(vendor_id, day, at)
    return {"vendor_id": vendor_id, "day": day.isoformat(), "open": is_open}


@app.post("/api/v1/bookings", response_model=Booking, status_code=201)
def request_booking(request: BookingRequest):
    return get_services().bookings.request_booking(request)


@app.get("/api/v1/bookings", response_model=List[Booking])
def list_bookings(
    vendor_id: Optional[str] = None,
    farmer_ref: Optional[str] = None,
    status: Optional[BookingStatus] = None,
):
    return get_services().bookings.list_bookings(
        vendor_id=vendor_id,
        farmer_ref=farmer_ref,
        booking_status=status.value if status else None,
    )


@app.get("/api/v1/bookings/anomalies", response_model=List[Booking])
def payment_anomalies(vendor_id: Optional[str] = None):
    return get_services().bookings.payment_anomalies(vendor_id=vendor_id)


@app.get("/api/v1/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str):
    return get_services().bookings.get_booking(booking_id)


@app.get("/api/v1/bookings/{booking_id}/events", response_model=List[BookingEvent])
def booking_events(booking_id: str):
    return get_services().bookings.list_events(booking_id)


@app.post("/api/v1/bookings/{booking_id}/confirm", response_model=Booking)
def confirm_booking(
    booking_id: str,
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
):
    actor = _actor(x_actor_id, x_actor_role)
    return get_services().bookings.confirm(booking_id, actor)


@app.post("/api/v1/bookings/{booking_id}/cancel", response_model=Booking)
def cancel_booking(
    booking_id: str,
    request: Optional[CancelRequest] = Body(default=None),
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
):
    actor = _actor(x_actor_id, x_actor_role)
    reason = request.reason if request else None
    return get_services().bookings.cancel(booking_id, actor, reason=reason)


@app.post("/api/v1/bookings/{booking_id}/complete", response_model=Booking)
def complete_booking(
    booking_id: str,
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
):
    actor = _actor(x_actor_id, x_actor_role)
    return get_services().bookings.complete(booking_id, actor)


@app.post("/api/v1/bookings/{booking_id}/payment", response_model=Booking)
def record_payment(booking_id: str, update: PaymentUpdate):
    return get_services().bookings.record_payment(
        booking_id, update.payment_status, reference=update.reference
    )


@app.post("/api/v1/pricing/suggestions", response_model=PricingAdvice)
def suggest_price(request: PricingRequest):
    return get_services().pricing.advise(request)


@app.post(
    "/api/v1/pricing/proposals/{proposal_id}/confirm",
    response_model=EquipmentOffering,
)
def confirm_price_proposal(
    proposal_id: str,
    confirmation: Optional[ProposalConfirmation] = Body(default=None),
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
):
    actor = _actor(x_actor_id, x_actor_role)
    if actor.role != ActorRole.VENDOR:
        raise InvalidTransition(
            "only the listing's vendor can confirm a price", proposal_id=proposal_id
        )
    price = confirmation.price if confirmation else None
    return get_services().pricing.confirm_proposal(proposal_id, actor.actor_id, price)
