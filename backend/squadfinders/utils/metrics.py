"""
Métricas personalizadas para Prometheus
Ciclo de vida de mensajes, jobs programados y borrados
"""

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest, CONTENT_TYPE_LATEST

# Registry para métricas personalizadas
REGISTRY = CollectorRegistry()

MESSAGES_EXPIRED_COUNTER = Counter(
    'squadfinders_messages_expired_total',
    'Total number of messages moved to expired',
    registry=REGISTRY
)

MESSAGES_CLAIMED_COUNTER = Counter(
    'squadfinders_messages_claimed_total',
    'Total number of messages handed out to workers',
    ['from_status', 'to_status'],
    registry=REGISTRY
)

RECORDS_DEACTIVATED_COUNTER = Counter(
    'squadfinders_records_deactivated_total',
    'Total number of records flipped to active=false by cleanup jobs',
    ['collection'],
    registry=REGISTRY
)

SCHEDULER_TICKS_COUNTER = Counter(
    'squadfinders_scheduler_ticks_total',
    'Scheduler tick outcomes',
    ['job', 'outcome'],
    registry=REGISTRY
)

SCHEDULER_TICK_DURATION_HISTOGRAM = Histogram(
    'squadfinders_scheduler_tick_duration_seconds',
    'Duration of scheduler ticks in seconds',
    ['job'],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 30.0, 120.0],
    registry=REGISTRY
)

MESSAGES_DELETED_COUNTER = Counter(
    'squadfinders_messages_deleted_total',
    'Total number of messages deleted through the API',
    registry=REGISTRY
)

HTTP_REQUEST_DURATION_HISTOGRAM = Histogram(
    'squadfinders_http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint', 'status_code'],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    registry=REGISTRY
)


def render_metrics() -> tuple[bytes, str]:
    """Exposición en formato texto de Prometheus."""
    return generate_latest(REGISTRY), CONTENT_TYPE_LATEST
