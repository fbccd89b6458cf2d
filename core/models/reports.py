"""Derived report models.

Everything here is computed on demand from issue lines and installation
records and is never persisted. Lists are kept in a stable order so that two
reports built from the same records serialize identically.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from core.models.canonical import InstallationRecord, IssuedLine, QaResult


class BucketClassification(str, Enum):
    """Reconciliation bucket for a single part."""
    MATCHED = "MATCHED"
    ISSUED_NOT_INSTALLED = "ISSUED_NOT_INSTALLED"
    INSTALLED_NOT_ISSUED = "INSTALLED_NOT_ISSUED"


class ReportStatus(str, Enum):
    """Single verdict gating QA and completion of a work order."""
    NEEDS_PARTS_RECONCILIATION = "NEEDS_PARTS_RECONCILIATION"
    NEEDS_QA = "NEEDS_QA"
    QA_FAILED = "QA_FAILED"
    OK = "OK"


class PartLedgerEntry(BaseModel):
    """Per-part quantity totals for one work order."""
    part_id: str
    issued_qty: Decimal = Decimal("0")
    installed_qty: Decimal = Decimal("0")
    remaining_qty: Decimal = Decimal("0")


class ReconciliationBucketEntry(BaseModel):
    """A part placed in one of the three reconciliation buckets."""
    part_id: str
    issued_qty: Decimal
    installed_qty: Decimal
    issued_cost: Decimal
    classification: BucketClassification


class Reconciliation(BaseModel):
    """Issued-vs-installed comparison for every part of a work order."""
    matched: List[ReconciliationBucketEntry] = Field(default_factory=list)
    issued_not_installed: List[ReconciliationBucketEntry] = Field(default_factory=list)
    installed_not_issued: List[ReconciliationBucketEntry] = Field(default_factory=list)

    @property
    def has_discrepancies(self) -> bool:
        return bool(self.issued_not_installed or self.installed_not_issued)


class InstallableRow(BaseModel):
    """A part that may still be installed, with the serials still available."""
    part_id: str
    issued_qty: Decimal
    installed_qty: Decimal
    remaining_qty: Decimal
    installable_serials: List[str] = Field(default_factory=list)


class MismatchCounts(BaseModel):
    issued_not_installed: int = 0
    installed_not_issued: int = 0


class ReportTotals(BaseModel):
    """Headline numbers shown next to the reconciliation table."""
    parts_cost_total: Decimal = Decimal("0")
    issued_qty_total: Decimal = Decimal("0")
    installed_qty_total: Decimal = Decimal("0")
    matched_count: int = 0
    mismatch_counts: MismatchCounts = Field(default_factory=MismatchCounts)


class WorkOrderReport(BaseModel):
    """Everything the report endpoint and installation checks depend on.

    Attributes:
        work_order_id: Work order the report was built for
        ledger: Per-part totals ordered by part_id
        reconciliation: Bucketed comparison of issued vs installed
        report_status: Derived gate verdict
        installable_parts: Parts (and serials) still open for installation
        qa_result: QA result the status was resolved against
        issued_lines: Raw issue lines the report was built from
        installations: Raw installation records the report was built from
        totals: Cost and mismatch summary
    """
    work_order_id: str
    ledger: List[PartLedgerEntry] = Field(default_factory=list)
    reconciliation: Reconciliation = Field(default_factory=Reconciliation)
    report_status: ReportStatus
    installable_parts: List[InstallableRow] = Field(default_factory=list)
    qa_result: Optional[QaResult] = None
    issued_lines: List[IssuedLine] = Field(default_factory=list)
    installations: List[InstallationRecord] = Field(default_factory=list)
    totals: ReportTotals = Field(default_factory=ReportTotals)

    def to_response(self) -> Dict[str, Any]:
        """Serialize into the report API shape."""
        issued = []
        for line in self.issued_lines:
            row = line.model_dump(mode="json")
            row["total_cost"] = str(line.total_cost)
            issued.append(row)

        return {
            "work_order_id": self.work_order_id,
            "report_status": self.report_status.value,
            "report_runtime": {
                "totals": self.totals.model_dump(mode="json"),
                "issued": {
                    "lines": issued,
                    "total_cost": str(self.totals.parts_cost_total),
                },
                "installed": {
                    "installations": [r.model_dump(mode="json") for r in self.installations],
                },
                "reconciliation": self.reconciliation.model_dump(mode="json"),
                "ledger": [e.model_dump(mode="json") for e in self.ledger],
                "installable_parts": [r.model_dump(mode="json") for r in self.installable_parts],
                "qa_result": self.qa_result.value if self.qa_result else None,
            },
        }
