"""
Metrics instrumentation for observability.
Exposes Prometheus-compatible metrics at /metrics endpoint.
"""

from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from fastapi import Response

# Reservation metrics
reservation_attempts = Counter(
    'reservation_attempts_total',
    'Total capacity reservation attempts',
    ['status']  # success, exceeded, contention, rejected
)

reservation_latency = Histogram(
    'reservation_latency_seconds',
    'Reservation request latency',
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0]
)

hold_transitions = Counter(
    'hold_transitions_total',
    'Reservation hold terminal transitions',
    ['status', 'reason']  # consumed/released, payment/cancelled/expired
)

threshold_alerts = Counter(
    'capacity_threshold_alerts_total',
    'Capacity alert threshold crossings',
    ['level']  # low, medium, high
)

# Reconciliation sweep metrics
reconciliation_runs = Counter(
    'reconciliation_runs_total',
    'Reconciliation sweep runs',
    ['result']  # ok, error
)

reconciliation_released = Counter(
    'reconciliation_holds_released_total',
    'Holds released by the reconciliation sweep'
)

reconciliation_duration = Histogram(
    'reconciliation_duration_seconds',
    'Reconciliation sweep duration',
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0]
)

# Waitlist metrics
waitlist_transitions = Counter(
    'waitlist_transitions_total',
    'Waitlist entry status changes',
    ['status']  # active, notified, confirmed, expired, cancelled
)

# Admission control metrics
admission_requests = Counter(
    'admission_requests_total',
    'Total admission control requests',
    ['result']  # admitted, rejected
)

# Database metrics
db_retries = Counter(
    'db_retry_attempts_total',
    'Database retry attempts due to version conflicts'
)

# Cache metrics
cache_operations = Counter(
    'cache_operations_total',
    'Cache operations',
    ['operation', 'result']  # get/set, hit/miss
)

redis_connection_errors = Counter(
    'redis_connection_errors_total',
    'Redis connection errors'
)

redis_circuit_breaker_open = Gauge(
    'redis_circuit_breaker_open',
    'Redis circuit breaker state (1=open, 0=closed)'
)


def metrics_endpoint() -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


# Convenience functions for instrumentation
def record_reservation_attempt(status: str):
    """Record reservation attempt. Status: success, exceeded, contention, rejected"""
    reservation_attempts.labels(status=status).inc()


def record_hold_transition(status: str, reason: str):
    hold_transitions.labels(status=status, reason=reason).inc()


def record_threshold_alert(level: str):
    threshold_alerts.labels(level=level).inc()


def record_admission(admitted: bool):
    """Record admission control decision."""
    result = "admitted" if admitted else "rejected"
    admission_requests.labels(result=result).inc()


def record_cache_operation(operation: str, hit: bool):
    """Record cache operation."""
    result = "hit" if hit else "miss"
    cache_operations.labels(operation=operation, result=result).inc()


def record_waitlist_transition(status: str):
    waitlist_transitions.labels(status=status).inc()
