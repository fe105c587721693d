"""
Prometheus collectors, scraped from /metrics.

Label values are kept to small closed sets (results, triggers, route
templates) so series counts stay bounded.
"""

from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

LATENCY_BUCKETS = (0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)

# HTTP
http_requests = Counter(
    'http_requests_total',
    'Requests served, by route template and status code',
    ['method', 'route', 'status']
)

http_request_latency = Histogram(
    'http_request_latency_seconds',
    'End-to-end request latency as seen by the middleware',
    ['method', 'route'],
    buckets=LATENCY_BUCKETS
)

# Registrations
registration_attempts = Counter(
    'registration_attempts_total',
    'Registration attempts by outcome',
    ['result']  # created, reactivated, rejected, error
)

registration_latency = Histogram(
    'registration_latency_seconds',
    'Time spent inside the locked registration transaction',
    buckets=LATENCY_BUCKETS
)

registration_cancellations = Counter(
    'registration_cancellations_total',
    'Registrations cancelled and returned to inventory'
)

# Payments
payment_materializations = Counter(
    'payment_materializations_total',
    'Checkout sessions turned into ticket and payment records',
    ['trigger', 'result']  # sync/webhook, created/duplicate
)

webhook_events = Counter(
    'webhook_events_total',
    'Verified payment provider webhook events',
    ['type']
)

webhook_signature_failures = Counter(
    'webhook_signature_failures_total',
    'Webhook payloads rejected for a bad signature'
)

# Cache
cache_lookups = Counter(
    'cache_lookups_total',
    'Cache reads by entry kind and outcome',
    ['kind', 'result']  # event_list/availability, hit/miss
)


def metrics_endpoint() -> Response:
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


def observe_request(method: str, route: str, status: int, seconds: float) -> None:
    http_requests.labels(method=method, route=route, status=str(status)).inc()
    http_request_latency.labels(method=method, route=route).observe(seconds)


def record_registration_attempt(result: str):
    registration_attempts.labels(result=result).inc()


def record_payment_materialization(trigger: str, duplicate: bool):
    payment_materializations.labels(trigger=trigger, result="duplicate" if duplicate else "created").inc()


def record_cache_operation(kind: str, hit: bool):
    cache_lookups.labels(kind=kind, result="hit" if hit else "miss").inc()
