"""Workflow definitions module."""

from workflows.closeout_workflow import (
    WorkOrderCloseoutWorkflow,
    CloseoutInput,
    CloseoutOutput,
    CloseoutStatus,
    TASK_QUEUE,
)

__all__ = [
    "WorkOrderCloseoutWorkflow",
    "CloseoutInput",
    "CloseoutOutput",
    "CloseoutStatus",
    "TASK_QUEUE",
]
