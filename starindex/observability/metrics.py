"""Prometheus metrics definitions for the month index.

Defines counters, gauges, and histograms for monitoring:
- Page fetch outcomes and rate-limit retries
- Index updates by source (build, self_heal, import)
- Index size and build duration

Usage:
    from starindex.observability.metrics import PAGES_FETCHED

    PAGES_FETCHED.labels(outcome="ok").inc()

Metrics are rendered by ``starindex status --metrics``.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

# Custom registry to avoid conflicts with default registry
REGISTRY = CollectorRegistry(auto_describe=True)

# =============================================================================
# COUNTERS
# =============================================================================

PAGES_FETCHED = Counter(
    name="starindex_pages_fetched_total",
    documentation="Total page fetches by outcome",
    labelnames=["outcome"],  # ok, exhausted, transient_error, rate_limited
    registry=REGISTRY,
)

RATE_LIMIT_RETRIES = Counter(
    name="starindex_rate_limit_retries_total",
    documentation="Total retries caused by HTTP 429 responses",
    registry=REGISTRY,
)

INDEX_UPDATES = Counter(
    name="starindex_index_updates_total",
    documentation="Total index entries created or tightened",
    labelnames=["source"],  # build, self_heal, import
    registry=REGISTRY,
)

BUILD_RUNS = Counter(
    name="starindex_build_runs_total",
    documentation="Total build runs by final state",
    labelnames=["mode", "state"],
    registry=REGISTRY,
)

# =============================================================================
# GAUGES
# =============================================================================

INDEX_ENTRIES = Gauge(
    name="starindex_index_entries",
    documentation="Number of months in the persisted index",
    registry=REGISTRY,
)

LAST_PAGE_PROCESSED = Gauge(
    name="starindex_last_page_processed",
    documentation="Highest page processed by the current or last build",
    registry=REGISTRY,
)

# =============================================================================
# HISTOGRAMS
# =============================================================================

BUILD_DURATION = Histogram(
    name="starindex_build_duration_seconds",
    documentation="Build run duration in seconds",
    labelnames=["mode"],
    buckets=(1, 10, 60, 300, 900, 1800, 3600, 7200, float("inf")),
    registry=REGISTRY,
)


def get_metrics_text() -> bytes:
    """Generate Prometheus metrics in text format."""
    return generate_latest(REGISTRY)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
