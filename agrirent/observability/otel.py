from __future__ import annotations

import json
import os
from contextlib import contextmanager
from typing import Dict, Optional

from opentelemetry import context as otel_context
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from .logging_utils import get_trace_id, reset_trace_id, set_trace_id


_OTEL_INITIALIZED = False
_OTEL_ATTR_MAX_LEN = int(os.getenv("OTEL_ATTR_MAX_LEN", "2000"))
_DEFAULT_SERVICE = "agrirent"


def _parse_pairs(raw: Optional[str]) -> Dict[str, str]:
    if not raw:
        return {}
    pairs: Dict[str, str] = {}
    for item in raw.split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        key, value = item.split("=", 1)
        key = key.strip()
        value = value.strip()
        if key and value:
            pairs[key] = value
    return pairs


def _safe_serialize(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def build_span_attributes(
    prefix: str, payload: object, limit: Optional[int] = None
) -> Dict[str, object]:
    text = _safe_serialize(payload)
    size = len(text)
    max_len = _OTEL_ATTR_MAX_LEN if limit is None else limit
    truncated = bool(max_len) and size > max_len
    if truncated:
        text = text[:max_len] + "..."
    return {
        prefix: text,
        f"{prefix}.size": size,
        f"{prefix}.truncated": truncated,
    }


def _set_span_attributes(span: object, attributes: Optional[Dict[str, object]]) -> None:
    if not attributes:
        return None
    for key, value in attributes.items():
        if value is None:
            continue
        if not isinstance(value, (str, bool, int, float)):
            value = _safe_serialize(value)
        span.set_attribute(key, value)


@contextmanager
def start_span(name: str, attributes: Optional[Dict[str, object]] = None):
    service = os.getenv("OTEL_SERVICE_NAME") or _DEFAULT_SERVICE
    tracer = trace.get_tracer(service)
    with tracer.start_as_current_span(name) as span:
        _set_span_attributes(span, attributes)
        yield span


def record_exception(span: object, exc: BaseException) -> None:
    if span is None:
        return None
    span.record_exception(exc)
    span.set_status(Status(StatusCode.ERROR, str(exc)))


def wrap_with_otel_context(func):
    """Carry the caller's span context into worker threads."""
    ctx = otel_context.get_current()

    def _inner(*args, **kwargs):
        token = otel_context.attach(ctx)
        try:
            return func(*args, **kwargs)
        finally:
            otel_context.detach(token)

    return _inner


def wrap_with_trace(func):
    """Carry both the log trace id and the span context into worker threads."""
    trace_id = get_trace_id()

    def _inner(*args, **kwargs):
        token = set_trace_id(trace_id)
        try:
            return func(*args, **kwargs)
        finally:
            reset_trace_id(token)

    return wrap_with_otel_context(_inner)


def _resolve_http_endpoint(base: Optional[str], override: Optional[str]) -> Optional[str]:
    endpoint = (override or base or "").strip()
    if not endpoint:
        return None
    if "/v1/" in endpoint:
        return endpoint
    return endpoint.rstrip("/") + "/v1/traces"


def init_otel(service_name: Optional[str] = None) -> bool:
    global _OTEL_INITIALIZED
    if _OTEL_INITIALIZED:
        return True
    exporter = (os.getenv("OTEL_TRACES_EXPORTER") or "otlp").strip().lower()
    if exporter in {"none", "off", "false", "0"}:
        return False
    endpoint = _resolve_http_endpoint(
        os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT"),
        os.getenv("OTEL_EXPORTER_OTLP_TRACES_ENDPOINT"),
    )
    if not endpoint:
        return False

    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor

    service = service_name or os.getenv("OTEL_SERVICE_NAME") or _DEFAULT_SERVICE
    resource = Resource.create(
        {
            "service.name": service,
            **_parse_pairs(os.getenv("OTEL_RESOURCE_ATTRIBUTES")),
        }
    )
    provider = TracerProvider(resource=resource)
    provider.add_span_processor(
        BatchSpanProcessor(
            OTLPSpanExporter(
                endpoint=endpoint,
                headers=_parse_pairs(os.getenv("OTEL_EXPORTER_OTLP_HEADERS")),
            )
        )
    )
    trace.set_tracer_provider(provider)
    _OTEL_INITIALIZED = True
    return True
