"""Prometheus metrics definitions for ufilekit.

All metrics use the ``ufilekit_`` prefix. Collectors are only registered
once ``init_metrics()`` has been called; until then the ``record_*`` helpers
are no-ops so library users who never enable metrics pay nothing and get no
collectors in their global registry.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

_initialized: bool = False

# ---------------------------------------------------------------------------
# Operation counter and latency  (labels: operation, status)
# ---------------------------------------------------------------------------
operations_total: Counter | None = None
operation_duration_seconds: Histogram | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_uploaded_total: Counter | None = None
bytes_downloaded_total: Counter | None = None

# ---------------------------------------------------------------------------
# In-flight part operations
# ---------------------------------------------------------------------------
parts_in_flight: Gauge | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    Safe to call more than once; only the first call registers collectors.
    """
    global _initialized
    global operations_total, operation_duration_seconds
    global bytes_uploaded_total, bytes_downloaded_total, parts_in_flight

    if _initialized:
        return

    operations_total = Counter(
        "ufilekit_operations_total",
        "Total UFile API operations by type and outcome",
        ["operation", "status"],
    )

    operation_duration_seconds = Histogram(
        "ufilekit_operation_duration_seconds",
        "Latency of UFile API operations",
        ["operation"],
    )

    bytes_uploaded_total = Counter(
        "ufilekit_bytes_uploaded_total",
        "Total bytes sent in part upload bodies",
    )

    bytes_downloaded_total = Counter(
        "ufilekit_bytes_downloaded_total",
        "Total bytes received in ranged download bodies",
    )

    parts_in_flight = Gauge(
        "ufilekit_parts_in_flight",
        "Part operations currently admitted by a concurrency gate",
    )

    _initialized = True


def record_operation(operation: str, status: str, duration: float) -> None:
    """Count one completed operation and observe its latency in seconds."""
    if operations_total is not None:
        operations_total.labels(operation=operation, status=status).inc()
    if operation_duration_seconds is not None:
        operation_duration_seconds.labels(operation=operation).observe(duration)


def record_bytes_uploaded(count: int) -> None:
    if bytes_uploaded_total is not None:
        bytes_uploaded_total.inc(count)


def record_bytes_downloaded(count: int) -> None:
    if bytes_downloaded_total is not None:
        bytes_downloaded_total.inc(count)


def adjust_parts_in_flight(delta: int) -> None:
    if parts_in_flight is not None:
        parts_in_flight.inc(delta)
