from __future__ import annotations

from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from ...domain.errors import ValidationError
from ...domain.matching import MatchScorer
from ...infra.vendor_directory import VendorDirectory
from ...observability.logging_utils import log_event
from ...observability.otel import build_span_attributes, record_exception, start_span
from ...schemas import FarmerRequest, MatchResult


def parse_farmer_request(payload: Union[FarmerRequest, dict]) -> FarmerRequest:
    if isinstance(payload, FarmerRequest):
        return payload
    try:
        return FarmerRequest.model_validate(payload)
    except PydanticValidationError as exc:
        fields = sorted(
            {".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()}
        )
        raise ValidationError(
            f"invalid farmer request: {', '.join(fields)}", fields=fields
        ) from exc


class MatchingService:
    """Pre-filter vendors by district and category, then rank them."""

    def __init__(
        self,
        directory: VendorDirectory,
        scorer: Optional[MatchScorer] = None,
    ) -> None:
        self._directory = directory
        self._scorer = scorer or MatchScorer()

    def find_matches(
        self, payload: Union[FarmerRequest, dict], *, limit: Optional[int] = None
    ) -> List[MatchResult]:
        request = parse_farmer_request(payload)
        attributes = {
            "match.district": request.district,
            "match.service": request.service_needed,
            "match.land_size_acres": request.land_size_acres,
        }
        with start_span("matching.find_matches", attributes) as span:
            try:
                candidates = self._directory.query(
                    district=request.district,
                    equipment_category=request.service_needed,
                    available_only=True,
                )
                results = self._scorer.match(request, candidates)
            except Exception as exc:
                record_exception(span, exc)
                raise
            if limit is not None:
                results = results[: max(0, limit)]
            span.set_attribute("match.candidates", len(candidates))
            for key, value in build_span_attributes(
                "match.vendor_ids", [item.vendor_id for item in results]
            ).items():
                span.set_attribute(key, value)
        log_event(
            "match_completed",
            district=request.district,
            service=request.service_needed,
            land_size_acres=request.land_size_acres,
            candidates=len(candidates),
            results=[
                {"vendor_id": item.vendor_id, "score": item.match_score} for item in results
            ],
        )
        return results
