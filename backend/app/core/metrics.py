# Centralized Prometheus metrics. Middleware below records timing
# and counts for every request; the commission helpers are called
# from the engine, settlement and batch code so dashboards can track
# how many commissions were computed, locked, or paid.

from time import monotonic

from fastapi import Request
from prometheus_client import Counter, Histogram
from starlette.middleware.base import BaseHTTPMiddleware

# Generic API latency + request counters. We label by method and
# endpoint so we can see hot paths and slow ones at a glance.
REQUEST_LATENCY = Histogram(
    "api_request_latency_seconds",
    "Latency of API requests in seconds",
    ["method", "endpoint"],
)
REQUEST_COUNT = Counter(
    "api_request_count_total",
    "Total API requests",
    ["method", "endpoint", "http_status"],
)

# Outcome of each calculate_one call: created, recalculated, skipped,
# locked or failed. A spike in "locked" usually means a batch re-ran
# over months that are already paid.
COMMISSION_CALCULATIONS_TOTAL = Counter(
    "commission_calculations_total",
    "Commission calculations grouped by outcome",
    ["outcome"],
)

SETTLEMENT_TRANSITIONS_TOTAL = Counter(
    "commission_settlement_transitions_total",
    "Commission payment status transitions",
    ["to_status"],
)

SETTLEMENT_REJECTIONS_TOTAL = Counter(
    "commission_settlement_rejections_total",
    "Settlement transitions refused before any state change",
    ["reason"],
)

BATCH_DURATION_SECONDS = Histogram(
    "commission_batch_duration_seconds",
    "Wall time of a commission batch sweep",
    buckets=[0.1, 0.5, 1, 2, 5, 10, 30, 60, 120, 300],
)

BATCH_PARTNERS_TOTAL = Counter(
    "commission_batch_partners_total",
    "Partners processed by batch sweeps grouped by result",
    ["result"],
)


def _label(value: object | None, default: str = "unknown") -> str:
    if value is None:
        return default
    text = str(getattr(value, "value", value)).strip()
    return text or default


def record_commission_calculation(outcome: str) -> None:
    COMMISSION_CALCULATIONS_TOTAL.labels(outcome=_label(outcome)).inc()


def record_settlement_transition(to_status: object) -> None:
    SETTLEMENT_TRANSITIONS_TOTAL.labels(to_status=_label(to_status)).inc()


def record_settlement_rejection(reason: str) -> None:
    SETTLEMENT_REJECTIONS_TOTAL.labels(reason=_label(reason)).inc()


def record_batch_run(*, duration_seconds: float, succeeded: int, skipped: int, failed: int) -> None:
    BATCH_DURATION_SECONDS.observe(duration_seconds)
    BATCH_PARTNERS_TOTAL.labels(result="succeeded").inc(succeeded)
    BATCH_PARTNERS_TOTAL.labels(result="skipped").inc(skipped)
    BATCH_PARTNERS_TOTAL.labels(result="failed").inc(failed)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start = monotonic()
        response = await call_next(request)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", None) or request.url.path
        REQUEST_LATENCY.labels(request.method, endpoint).observe(monotonic() - start)
        REQUEST_COUNT.labels(request.method, endpoint, str(response.status_code)).inc()
        return response
