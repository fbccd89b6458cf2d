"""
Observability for work-order parts tracking: correlated structured logging
and in-process metrics (operations, report statuses, closeout activities,
timings).
"""

from core.observability.logging import (
    CorrelatedLogger,
    CorrelationContext,
    CorrelationFilter,
    configure_logging,
    get_correlation_context,
    get_logger,
    with_correlation,
)
from core.observability.metrics import (
    MetricsCollector,
    get_metrics,
    record_activity_completed,
    record_activity_failed,
    record_activity_started,
    record_operation,
    record_processing_time,
    record_report_status,
)

__all__ = [
    "CorrelatedLogger",
    "CorrelationContext",
    "CorrelationFilter",
    "configure_logging",
    "get_correlation_context",
    "get_logger",
    "with_correlation",
    "MetricsCollector",
    "get_metrics",
    "record_activity_completed",
    "record_activity_failed",
    "record_activity_started",
    "record_operation",
    "record_processing_time",
    "record_report_status",
]
