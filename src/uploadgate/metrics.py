"""Prometheus metrics definitions for uploadgate.

All custom metrics use the ``uploadgate_`` prefix. These are
*application-level* upload metrics; ``prometheus-fastapi-instrumentator``
provides the HTTP-level ones (request count, duration, sizes).

Counters reset to zero on restart. The active-sessions gauge reads the
session registry directly at scrape time.
"""

from __future__ import annotations

from collections.abc import Callable

from prometheus_client import Counter, Gauge

# Flag indicating whether metrics have been initialised via init_metrics().
_initialized: bool = False

# ---------------------------------------------------------------------------
# Upload operation counter  (labels: operation, status)
# ---------------------------------------------------------------------------
upload_operations_total: Counter | None = None

# ---------------------------------------------------------------------------
# Session gauge
# ---------------------------------------------------------------------------
active_sessions: Gauge | None = None

# ---------------------------------------------------------------------------
# Byte counters
# ---------------------------------------------------------------------------
bytes_received_total: Counter | None = None
bytes_sent_total: Counter | None = None


def init_metrics() -> None:
    """Create and register all Prometheus metrics.

    This must be called once when metrics are enabled.  When metrics are
    disabled in config the module-level references stay ``None`` and no
    collectors are registered in the global registry.
    """
    global _initialized
    global upload_operations_total, active_sessions
    global bytes_received_total, bytes_sent_total

    if _initialized:
        return

    upload_operations_total = Counter(
        "uploadgate_upload_operations_total",
        "Total upload operations by type and outcome",
        ["operation", "status"],
    )

    active_sessions = Gauge(
        "uploadgate_active_sessions",
        "Upload sessions currently tracked in memory",
    )

    bytes_received_total = Counter(
        "uploadgate_bytes_received_total",
        "Total bytes received in request bodies",
    )

    bytes_sent_total = Counter(
        "uploadgate_bytes_sent_total",
        "Total bytes sent in response bodies",
    )

    _initialized = True


def record_operation(operation: str, status: str) -> None:
    """Count one upload operation outcome; no-op while metrics are disabled."""
    if upload_operations_total is not None:
        upload_operations_total.labels(operation=operation, status=status).inc()


def track_active_sessions(count: Callable[[], float]) -> None:
    """Make the active-sessions gauge read ``count()`` at scrape time."""
    if active_sessions is not None:
        active_sessions.set_function(count)
