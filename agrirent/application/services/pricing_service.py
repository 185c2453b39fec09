from __future__ import annotations

import ast
import json
import math
import re
import uuid
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Any, Callable, Dict, Optional

from langchain_core.messages import HumanMessage, SystemMessage

from ...domain.booking import utcnow
from ...domain.enums import PricingUnit
from ...domain.errors import (
    AdvisorUnavailable,
    ConcurrentUpdate,
    InvalidTransition,
    NotFound,
    ValidationError,
)
from ...domain.normalizers import EnumNormalizer
from ...infra.config import get_config
from ...infra.document_store import DocumentStore
from ...infra.llm import get_pricing_model
from ...observability.logging_utils import log_event, log_warning, summarize_text
from ...observability.otel import (
    build_span_attributes,
    record_exception,
    start_span,
    wrap_with_trace,
)
from ...prompts.pricing import PRICING_SYSTEM_PROMPT, build_pricing_prompt
from ...schemas import (
    EquipmentOffering,
    PriceProposal,
    PricingAdvice,
    PricingRequest,
    PricingSuggestion,
)
from .vendor_service import VendorService


PROPOSAL_COLLECTION = "price_proposals"
NO_SUGGESTION_MESSAGE = "No price suggestion is available right now."

Oracle = Callable[[Dict[str, Any]], object]


def _default_oracle(payload: Dict[str, Any]) -> object:
    llm = get_pricing_model()
    messages = [
        SystemMessage(content=PRICING_SYSTEM_PROMPT),
        HumanMessage(content=build_pricing_prompt(payload)),
    ]
    return llm.invoke(messages)


def _extract_llm_text(result: object) -> str:
    content = getattr(result, "content", result)
    if isinstance(content, dict):
        return json.dumps(content, default=str)
    if isinstance(content, list):
        parts = []
        for item in content:
            if isinstance(item, dict):
                parts.append(str(item.get("text") or item.get("content") or ""))
            else:
                parts.append(str(item))
        return "".join(parts).strip()
    if content is None:
        return ""
    return str(content).strip()


def _strip_code_fence(text: str) -> str:
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = re.sub(r"^```(?:json)?", "", cleaned, flags=re.IGNORECASE).strip()
        if cleaned.endswith("```"):
            cleaned = cleaned[:-3].strip()
    return cleaned


def _extract_json_block(text: str) -> Optional[str]:
    if not text:
        return None
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    return text[start : end + 1]


def _load_json_payload(text: str) -> Optional[dict]:
    if not text:
        return None
    cleaned = _strip_code_fence(text)
    for candidate in (cleaned, _extract_json_block(cleaned)):
        if not candidate:
            continue
        try:
            data = json.loads(candidate)
        except json.JSONDecodeError:
            try:
                data = ast.literal_eval(candidate)
            except (ValueError, SyntaxError, TypeError):
                continue
        if isinstance(data, dict):
            return data
    return None


def _parse_price(value: object) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, str):
        value = value.replace(",", "").replace("₹", "").strip()
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price < 0:
        return None
    return price


def build_oracle_payload(request: PricingRequest) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "equipmentType": request.equipment_type,
        "acreage": request.acreage,
        "comparableListings": request.comparable_listings,
        "pricingUnit": request.pricing_unit.value,
    }
    if request.travel_charge is not None:
        payload["travelCharge"] = request.travel_charge
    if request.additional_considerations:
        payload["additionalConsiderations"] = request.additional_considerations
    return payload


def parse_suggestion(raw: object, requested_unit: PricingUnit) -> PricingSuggestion:
    """Validate an oracle reply; anything unusable raises ``AdvisorUnavailable``."""
    text = _extract_llm_text(raw)
    data = _load_json_payload(text)
    if data is None:
        raise AdvisorUnavailable(
            "pricing oracle returned no JSON object", raw=summarize_text(text, 200)
        )
    price = _parse_price(data.get("suggestedPrice"))
    if price is None:
        raise AdvisorUnavailable(
            "pricing oracle returned no usable price",
            suggested_price=data.get("suggestedPrice"),
        )
    unit = EnumNormalizer.coerce(PricingUnit, data.get("effectivePricingUnit"))
    if unit is None:
        unit = requested_unit
    reasoning = data.get("reasoning")
    return PricingSuggestion(
        suggested_price=price,
        reasoning=str(reasoning).strip() if reasoning else "",
        effective_pricing_unit=unit,
    )


class PricingAdvisor:
    """
    Wraps the untrusted pricing oracle.

    Replies are validated before use and never change a listing directly;
    suggestions for a known listing become a ``PriceProposal`` that the
    owning vendor has to confirm.
    """

    def __init__(
        self,
        store: DocumentStore,
        vendors: VendorService,
        *,
        oracle: Optional[Oracle] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self._store = store
        self._vendors = vendors
        self._oracle = oracle or _default_oracle
        self._timeout = (
            timeout_seconds
            if timeout_seconds is not None
            else get_config().pricing_timeout_seconds
        )
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="pricing")

    def suggest(
        self,
        equipment_type: str,
        acreage: float,
        pricing_unit: PricingUnit,
        comparable_listings: str = "",
        travel_charge: Optional[float] = None,
        notes: Optional[str] = None,
        *,
        vendor_id: Optional[str] = None,
        equipment_id: Optional[str] = None,
    ) -> PricingAdvice:
        request = PricingRequest(
            equipment_type=equipment_type,
            acreage=acreage,
            pricing_unit=pricing_unit,
            comparable_listings=comparable_listings or "",
            travel_charge=travel_charge,
            additional_considerations=notes,
            vendor_id=vendor_id,
            equipment_id=equipment_id,
        )
        return self.advise(request)

    def advise(self, request: PricingRequest) -> PricingAdvice:
        if bool(request.vendor_id) != bool(request.equipment_id):
            raise ValidationError(
                "vendor_id and equipment_id must be given together",
                fields=["vendor_id", "equipment_id"],
            )
        if request.vendor_id:
            self._find_offering(request.vendor_id, request.equipment_id)
        try:
            suggestion = self._ask_oracle(request)
        except AdvisorUnavailable as exc:
            log_warning("pricing_unavailable", error=exc.message, **exc.details)
            return PricingAdvice(available=False, message=NO_SUGGESTION_MESSAGE)
        proposal_id = None
        if request.vendor_id:
            proposal = self._store_proposal(
                request.vendor_id, request.equipment_id, suggestion
            )
            proposal_id = proposal.proposal_id
        return PricingAdvice(
            available=True,
            suggestion=suggestion,
            proposal_id=proposal_id,
            message="Review the suggested price and confirm it to apply.",
        )

    def _ask_oracle(self, request: PricingRequest) -> PricingSuggestion:
        payload = build_oracle_payload(request)
        attributes = build_span_attributes("pricing.request", payload)
        with start_span("pricing.oracle", attributes) as span:
            log_event("pricing_call", equipment_type=request.equipment_type)
            future = self._executor.submit(wrap_with_trace(self._oracle), payload)
            try:
                raw = future.result(timeout=self._timeout)
            except FutureTimeout as exc:
                future.cancel()
                error = AdvisorUnavailable(
                    f"pricing oracle timed out after {self._timeout:g}s"
                )
                record_exception(span, error)
                raise error from exc
            except Exception as exc:
                error = AdvisorUnavailable(f"pricing oracle failed: {exc}")
                record_exception(span, error)
                raise error from exc
            try:
                suggestion = parse_suggestion(raw, request.pricing_unit)
            except AdvisorUnavailable as exc:
                record_exception(span, exc)
                raise
        log_event(
            "pricing_response",
            suggested_price=suggestion.suggested_price,
            pricing_unit=suggestion.effective_pricing_unit.value,
            reasoning=summarize_text(suggestion.reasoning),
        )
        return suggestion

    def _find_offering(self, vendor_id: str, equipment_id: str) -> EquipmentOffering:
        offering = self._vendors.get_vendor(vendor_id).find_equipment(equipment_id)
        if offering is None:
            raise NotFound(
                f"equipment {equipment_id} not found for vendor {vendor_id}",
                vendor_id=vendor_id,
                equipment_id=equipment_id,
            )
        return offering

    def _store_proposal(
        self, vendor_id: str, equipment_id: str, suggestion: PricingSuggestion
    ) -> PriceProposal:
        proposal = PriceProposal(
            proposal_id=uuid.uuid4().hex,
            vendor_id=vendor_id,
            equipment_id=equipment_id,
            suggestion=suggestion,
            created_at=utcnow(),
        )
        self._store.put(
            PROPOSAL_COLLECTION, proposal.proposal_id, proposal.model_dump(mode="json")
        )
        log_event(
            "pricing_proposal_created",
            proposal_id=proposal.proposal_id,
            vendor_id=vendor_id,
            equipment_id=equipment_id,
        )
        return proposal

    def get_proposal(self, proposal_id: str) -> PriceProposal:
        document = self._store.get(PROPOSAL_COLLECTION, proposal_id)
        if document is None:
            raise NotFound(f"price proposal {proposal_id} not found", proposal_id=proposal_id)
        return PriceProposal.model_validate(document.data)

    def confirm_proposal(
        self, proposal_id: str, vendor_id: str, price: Optional[float] = None
    ) -> EquipmentOffering:
        """Apply a proposal to the listing. Only its vendor may do this, and only once."""
        document = self._store.get(PROPOSAL_COLLECTION, proposal_id)
        if document is None:
            raise NotFound(f"price proposal {proposal_id} not found", proposal_id=proposal_id)
        proposal = PriceProposal.model_validate(document.data)
        if proposal.vendor_id != vendor_id:
            raise InvalidTransition(
                f"{vendor_id} cannot confirm a proposal for vendor {proposal.vendor_id}",
                proposal_id=proposal_id,
            )
        if proposal.status == "confirmed":
            raise InvalidTransition(
                f"price proposal {proposal_id} is already confirmed",
                proposal_id=proposal_id,
            )
        final_price = proposal.suggestion.suggested_price if price is None else float(price)
        if final_price < 0:
            raise ValidationError("price must not be negative", fields=["price"])
        confirmed = proposal.model_copy(
            update={
                "status": "confirmed",
                "confirmed_at": utcnow(),
                "confirmed_price": final_price,
            }
        )
        version = self._store.put_if_match(
            PROPOSAL_COLLECTION,
            proposal_id,
            confirmed.model_dump(mode="json"),
            expected_version=document.version,
        )
        if version is None:
            raise ConcurrentUpdate(
                f"price proposal {proposal_id} changed while confirming",
                proposal_id=proposal_id,
            )
        offering = self._vendors.update_equipment_price(
            vendor_id,
            proposal.equipment_id,
            final_price,
            proposal.suggestion.effective_pricing_unit,
        )
        log_event(
            "pricing_proposal_confirmed",
            proposal_id=proposal_id,
            vendor_id=vendor_id,
            equipment_id=proposal.equipment_id,
            price=final_price,
            adjusted=price is not None,
        )
        return offering
