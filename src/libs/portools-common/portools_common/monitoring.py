# src/libs/portools-common/portools_common/monitoring.py
import logging
from prometheus_client import Counter, Gauge, Histogram

logger = logging.getLogger(__name__)

# --------------------------------------------------------------------------------------
# DB metrics (used by portools_common.utils.async_timed)
# --------------------------------------------------------------------------------------
DB_OPERATION_LATENCY_SECONDS = Histogram(
    "db_operation_latency_seconds",
    "Latency of database operations in seconds",
    labelnames=("repository", "method"),
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

# --------------------------------------------------------------------------------------
# Kafka metrics
# --------------------------------------------------------------------------------------
KAFKA_MESSAGES_PUBLISHED_TOTAL = Counter(
    "kafka_messages_published_total",
    "Number of messages successfully published to Kafka",
    labelnames=("topic",),
)

KAFKA_CONSUME_ERRORS_TOTAL = Counter(
    "kafka_consume_errors_total",
    "Number of Kafka consume errors",
    labelnames=("topic", "error"),
)

def observe_kafka_published(topic: str, count: int = 1) -> None:
    KAFKA_MESSAGES_PUBLISHED_TOTAL.labels(topic).inc(count)

def observe_kafka_consume_error(topic: str, error: str, count: int = 1) -> None:
    KAFKA_CONSUME_ERRORS_TOTAL.labels(topic, error).inc(count)

# --------------------------------------------------------------------------------------
# Summary stream metrics
# --------------------------------------------------------------------------------------
SUMMARY_STREAM_EVENTS_TOTAL = Counter(
    "summary_stream_events_total",
    "Number of change events received by the summary stream, by operation.",
    labelnames=("operation",),
)

SUMMARY_VIEW_WRITES_TOTAL = Counter(
    "summary_view_writes_total",
    "Number of derived view recomputations, by view kind and outcome (success/failure).",
    labelnames=("view_kind", "outcome"),
)

CHANGE_FEED_CHECKPOINT_WRITES_TOTAL = Counter(
    "change_feed_checkpoint_writes_total",
    "Number of change feed checkpoint writes, by outcome (success/failure).",
    labelnames=("outcome",),
)

SUMMARY_EVENT_PROCESSING_SECONDS = Histogram(
    "summary_event_processing_seconds",
    "Time taken to recompute and persist every view for one change event.",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)

def observe_stream_event(operation: str) -> None:
    SUMMARY_STREAM_EVENTS_TOTAL.labels(operation).inc()

def observe_view_write(view_kind: str, success: bool) -> None:
    SUMMARY_VIEW_WRITES_TOTAL.labels(view_kind, "success" if success else "failure").inc()

def observe_checkpoint_write(success: bool) -> None:
    CHANGE_FEED_CHECKPOINT_WRITES_TOTAL.labels("success" if success else "failure").inc()

def event_processing_timer():
    """Context manager that observes how long one change event took to process."""
    return SUMMARY_EVENT_PROCESSING_SECONDS.time()

# --------------------------------------------------------------------------------------
# Outbox Dispatcher Metrics
# --------------------------------------------------------------------------------------
_OUTBOX_PUBLISHED = Counter(
    "outbox_events_published_total",
    "Number of outbox events successfully published to Kafka",
    labelnames=("aggregate_type", "topic"),
)

_OUTBOX_FAILED = Counter(
    "outbox_events_failed_total",
    "Number of outbox events that failed to publish to Kafka",
    labelnames=("aggregate_type", "topic"),
)

_OUTBOX_PENDING = Gauge(
    "outbox_events_pending",
    "Total number of PENDING outbox events in the database",
)

_OUTBOX_BATCH_SECONDS = Histogram(
    "outbox_dispatch_batch_seconds",
    "Time taken to process one outbox dispatch batch (lock, publish, update statuses).",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

def observe_outbox_published(aggregate_type: str, topic: str, count: int = 1) -> None:
    _OUTBOX_PUBLISHED.labels(aggregate_type, topic).inc(count)

def observe_outbox_failed(aggregate_type: str, topic: str, count: int = 1) -> None:
    _OUTBOX_FAILED.labels(aggregate_type, topic).inc(count)

def set_outbox_pending(total_pending: int) -> None:
    _OUTBOX_PENDING.set(total_pending)

def outbox_batch_timer():
    """Context manager that observes outbox batch duration."""
    return _OUTBOX_BATCH_SECONDS.time()
