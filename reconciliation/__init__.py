"""
Parts Reconciliation Package

Pure engine that reconciles parts issued to a work order against parts
installed on the vehicle, and gates completion of the work order.

Pipeline:
    issue lines + installations -> aggregate() -> reconcile() -> resolve_status() -> complete()

Usage:
    from reconciliation import build_report, complete

    report = build_report(work_order_id, store)
    result = complete(work_order, report.report_status, actor_role="ADMIN")
    if not result.ok:
        print(result.error.to_dict())
"""

from .errors import (
    ErrorCode,
    EngineError,
    ValidationError,
    PartNotIssuedOrFullyInstalled,
    SerialRequired,
    SerialAlreadyInstalled,
    QuantityExceedsRemaining,
    InvalidOdometer,
    NotReconciledOrQaPending,
    AlreadyTerminal,
    Forbidden,
    WorkOrderNotFound,
    DataIntegrityError,
    Result,
)

from .units import (
    classify,
    is_serialized,
    validate_unit_quantity,
)

from .ledger import (
    Ledger,
    aggregate,
)

from .capacity import (
    QTY_TOLERANCE,
    compute_installable,
    validate_installation,
    validate_issue_line,
)

from .engine import reconcile
from .status import resolve_status

from .gate import (
    DEFAULT_COMPLETION_ROLES,
    complete,
    is_authorized,
)

from .report import (
    RecordSource,
    assemble_report,
    build_report,
)

__all__ = [
    # Errors
    "ErrorCode",
    "EngineError",
    "ValidationError",
    "PartNotIssuedOrFullyInstalled",
    "SerialRequired",
    "SerialAlreadyInstalled",
    "QuantityExceedsRemaining",
    "InvalidOdometer",
    "NotReconciledOrQaPending",
    "AlreadyTerminal",
    "Forbidden",
    "WorkOrderNotFound",
    "DataIntegrityError",
    "Result",

    # Engine
    "classify",
    "is_serialized",
    "validate_unit_quantity",
    "Ledger",
    "aggregate",
    "QTY_TOLERANCE",
    "compute_installable",
    "validate_installation",
    "validate_issue_line",
    "reconcile",
    "resolve_status",
    "DEFAULT_COMPLETION_ROLES",
    "complete",
    "is_authorized",

    # Report
    "RecordSource",
    "assemble_report",
    "build_report",
]
