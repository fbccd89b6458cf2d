"""Reconciliation engine for issued vs installed parts on a work order.

Exposes high-level function:
- reconcile(ledger, issued_lines) -> Reconciliation
"""

from decimal import Decimal
from typing import Dict, Iterable, Optional

from core.models.canonical import IssuedLine
from core.models.reports import (
    BucketClassification,
    Reconciliation,
    ReconciliationBucketEntry,
)
from reconciliation.capacity import QTY_TOLERANCE
from reconciliation.ledger import Ledger


ZERO = Decimal("0")


# =============================================================================
# Utility Functions
# =============================================================================

def quantities_match(
    a: Decimal,
    b: Decimal,
    tolerance: Decimal = QTY_TOLERANCE,
) -> bool:
    """Check if two quantities match within tolerance."""
    return abs(a - b) <= tolerance


def issued_cost_by_part(issued_lines: Iterable[IssuedLine]) -> Dict[str, Decimal]:
    """Sum qty * unit_cost per part."""
    costs: Dict[str, Decimal] = {}
    for line in issued_lines:
        costs[line.part_id] = costs.get(line.part_id, ZERO) + line.total_cost
    return costs


def classify_entry(issued_qty: Decimal, installed_qty: Decimal) -> BucketClassification:
    """Pick the bucket for one part's totals."""
    if quantities_match(issued_qty, installed_qty):
        return BucketClassification.MATCHED
    if issued_qty > installed_qty:
        return BucketClassification.ISSUED_NOT_INSTALLED
    return BucketClassification.INSTALLED_NOT_ISSUED


# =============================================================================
# Main Reconciliation Engine
# =============================================================================

def reconcile(
    ledger: Ledger,
    issued_lines: Optional[Iterable[IssuedLine]] = None,
) -> Reconciliation:
    """Place every part of the ledger into exactly one bucket.

    Parts never issued and never installed are left out. installed_not_issued
    is an anomaly that must be shown to the operator; it is reported here and
    blocks completion further down, it is never dropped.

    Args:
        ledger: Per-part totals from aggregate()
        issued_lines: Issue lines used to compute issued_cost per part

    Returns:
        Reconciliation with matched, issued_not_installed and
        installed_not_issued buckets, each ordered by part_id
    """
    costs = issued_cost_by_part(issued_lines or [])
    result = Reconciliation()

    for part_id in sorted(ledger):
        entry = ledger[part_id]
        if entry.issued_qty == ZERO and entry.installed_qty == ZERO:
            continue

        classification = classify_entry(entry.issued_qty, entry.installed_qty)
        bucket_entry = ReconciliationBucketEntry(
            part_id=part_id,
            issued_qty=entry.issued_qty,
            installed_qty=entry.installed_qty,
            issued_cost=costs.get(part_id, ZERO),
            classification=classification,
        )

        if classification == BucketClassification.MATCHED:
            result.matched.append(bucket_entry)
        elif classification == BucketClassification.ISSUED_NOT_INSTALLED:
            result.issued_not_installed.append(bucket_entry)
        else:
            result.installed_not_issued.append(bucket_entry)

    return result
