"""Observability module: logging, correlation IDs and Prometheus metrics.

Usage:
    from starindex.observability import (
        configure_logging,
        correlation_id_context,
        PAGES_FETCHED,
    )
"""

from starindex.observability.context import (
    set_correlation_id,
    get_correlation_id,
    clear_correlation_id,
    correlation_id_context,
)
from starindex.observability.logging import (
    get_logger,
    configure_logging,
    bind_context,
    clear_context,
    add_correlation_id_processor,
)
from starindex.observability.metrics import (
    PAGES_FETCHED,
    RATE_LIMIT_RETRIES,
    INDEX_UPDATES,
    BUILD_RUNS,
    INDEX_ENTRIES,
    LAST_PAGE_PROCESSED,
    BUILD_DURATION,
    get_metrics_text,
    get_metrics_content_type,
)

__all__ = [
    # Context
    "set_correlation_id",
    "get_correlation_id",
    "clear_correlation_id",
    "correlation_id_context",
    # Logging
    "get_logger",
    "configure_logging",
    "bind_context",
    "clear_context",
    "add_correlation_id_processor",
    # Metrics
    "PAGES_FETCHED",
    "RATE_LIMIT_RETRIES",
    "INDEX_UPDATES",
    "BUILD_RUNS",
    "INDEX_ENTRIES",
    "LAST_PAGE_PROCESSED",
    "BUILD_DURATION",
    "get_metrics_text",
    "get_metrics_content_type",
]
