"""Core data models for work-order parts tracking.

Canonical records (issue lines, installations, work orders), derived report
models and audit events.
"""

from core.models.canonical import (
    # Base
    CanonicalBase,
    DecimalValue,

    # Enums
    WorkOrderStatus,
    QaResult,
    UnitMode,

    # Records
    Part,
    Issue,
    IssuedLine,
    IssueLineRequest,
    InstallationRecord,
    InstallationRequest,
    WorkOrder,
    QaReport,
)

from core.models.reports import (
    BucketClassification,
    ReportStatus,
    PartLedgerEntry,
    ReconciliationBucketEntry,
    Reconciliation,
    InstallableRow,
    MismatchCounts,
    ReportTotals,
    WorkOrderReport,
)

from core.models.audit import (
    AuditEvent,
    AuditSeverity,
)

__all__ = [
    # Base
    "CanonicalBase",
    "DecimalValue",

    # Enums
    "WorkOrderStatus",
    "QaResult",
    "UnitMode",

    # Records
    "Part",
    "Issue",
    "IssuedLine",
    "IssueLineRequest",
    "InstallationRecord",
    "InstallationRequest",
    "WorkOrder",
    "QaReport",

    # Derived
    "BucketClassification",
    "ReportStatus",
    "PartLedgerEntry",
    "ReconciliationBucketEntry",
    "Reconciliation",
    "InstallableRow",
    "MismatchCounts",
    "ReportTotals",
    "WorkOrderReport",

    # Audit
    "AuditEvent",
    "AuditSeverity",
]
