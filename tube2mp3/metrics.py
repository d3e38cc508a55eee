from __future__ import annotations

from prometheus_client import Counter, Gauge

from tube2mp3.logging_utils import get_logger


logger = get_logger(__name__)


CONVERSIONS_TOTAL = Counter(
    "tube2mp3_conversions_total",
    "Total conversion requests by final status and error kind.",
    ["status", "error"],
)

CACHE_LOOKUPS_TOTAL = Counter(
    "tube2mp3_cache_lookups_total",
    "Total freshness lookups against durable storage by outcome.",
    ["state"],
)

EGRESS_LEASES_IN_USE = Gauge(
    "tube2mp3_egress_leases_in_use",
    "Current number of egress proxies leased out to running conversions.",
)

EGRESS_POOL_CAPACITY = Gauge(
    "tube2mp3_egress_pool_capacity",
    "Configured number of egress proxies.",
)

EGRESS_CAPACITY_DENIALS_TOTAL = Counter(
    "tube2mp3_egress_capacity_denials_total",
    "Total number of lease requests denied because every proxy was in use.",
)

PUBLISHED_BYTES_TOTAL = Counter(
    "tube2mp3_published_bytes_total",
    "Total number of MP3 bytes uploaded to durable storage.",
)

CLEANUP_FAILURES_TOTAL = Counter(
    "tube2mp3_cleanup_failures_total",
    "Total number of local intermediates that could not be deleted.",
)


def record_conversion(status: str, error: str | None = None) -> None:
    CONVERSIONS_TOTAL.labels(status=status, error=error or "none").inc()


def record_cache_lookup(state: str) -> None:
    CACHE_LOOKUPS_TOTAL.labels(state=state).inc()


def set_pool_capacity(capacity: int) -> None:
    EGRESS_POOL_CAPACITY.set(capacity)


def set_leases_in_use(in_use: int) -> None:
    EGRESS_LEASES_IN_USE.set(in_use)


def record_capacity_denial() -> None:
    """Record that a lease request was rejected at capacity."""
    EGRESS_CAPACITY_DENIALS_TOTAL.inc()


def record_published_bytes(num_bytes: int) -> None:
    PUBLISHED_BYTES_TOTAL.inc(max(0, num_bytes))


def record_cleanup_failure() -> None:
    CLEANUP_FAILURES_TOTAL.inc()
