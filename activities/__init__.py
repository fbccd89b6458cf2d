"""Activity definitions module."""

from activities.work_orders import (
    build_work_order_report,
    complete_work_order,
    set_activity_service,
    BuildReportInput,
    BuildReportOutput,
    CompleteWorkOrderInput,
    CompleteWorkOrderOutput,
)

__all__ = [
    "build_work_order_report",
    "complete_work_order",
    "set_activity_service",
    "BuildReportInput",
    "BuildReportOutput",
    "CompleteWorkOrderInput",
    "CompleteWorkOrderOutput",
]
