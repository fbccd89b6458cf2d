"""Core canonical data models for work-order parts tracking.

These models represent issued parts, installed parts and the work order that
owns them. They are the tagged records every engine function operates on;
nothing downstream probes raw dicts for optional fields.

Quantities and costs are Decimal. Sign and serialization rules are NOT enforced
here: write-side requests are checked by reconciliation.capacity and stored
records are checked by reconciliation.ledger, so corrupted data can surface as
a DataIntegrityError instead of a parse failure.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers
# =============================================================================

def _finite(d: Decimal) -> Decimal:
    if not d.is_finite():
        raise ValueError(f"Expected a finite number, got {d}")
    return d


def _parse_decimal(value):
    """Parse decimal from numbers or strings (strips thousands separators).

    Raises ValueError, which pydantic reports as a validation error, for text
    that is not a number and for NaN or Infinity.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return _finite(value)
    if isinstance(value, bool):
        raise ValueError("Boolean is not a quantity")
    if isinstance(value, (int, float)):
        return _finite(Decimal(str(value)))
    if isinstance(value, str):
        s = value.strip().replace(",", "")
        if s == "":
            return None
        try:
            return _finite(Decimal(s))
        except InvalidOperation:
            raise ValueError(f"Not a number: {value!r}") from None
    return value


def utc_now() -> datetime:
    """Timezone-aware current time; every stored timestamp is UTC."""
    return datetime.now(timezone.utc)


def _parse_optional_id(value):
    """Normalize blank identifiers to None."""
    if value is None:
        return None
    s = str(value).strip()
    return s or None


DecimalValue = Annotated[Decimal, BeforeValidator(_parse_decimal)]
OptionalId = Annotated[Optional[str], BeforeValidator(_parse_optional_id)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Enums
# =============================================================================

class WorkOrderStatus(str, Enum):
    """Work order lifecycle. COMPLETED and CANCELED are terminal."""
    OPEN = "OPEN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELED = "CANCELED"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkOrderStatus.COMPLETED, WorkOrderStatus.CANCELED)


class QaResult(str, Enum):
    """Road test / quality assurance outcome."""
    PASS = "PASS"
    FAIL = "FAIL"


class UnitMode(str, Enum):
    """How a part instance is tracked."""
    SERIALIZED = "SERIALIZED"
    BULK = "BULK"


# =============================================================================
# Catalog
# =============================================================================

class Part(CanonicalBase):
    """Catalog entry. Name and brand are display-only; reconciliation keys on part_id."""
    part_id: str
    name: Optional[str] = None
    brand: Optional[str] = None


# =============================================================================
# Issuance
# =============================================================================

class Issue(CanonicalBase):
    """An issuance event releasing stock against a work order."""
    id: str
    work_order_id: str
    created_at: datetime
    notes: Optional[str] = None


class IssuedLine(CanonicalBase):
    """One row of an issuance event."""
    id: Optional[str] = None
    issue_id: str
    work_order_id: Optional[str] = None
    part_id: str
    part_item_id: OptionalId = None
    qty: DecimalValue
    unit_cost: DecimalValue = Decimal("0")
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def total_cost(self) -> Decimal:
        return self.qty * self.unit_cost


class IssueLineRequest(CanonicalBase):
    """Write-side input for a new issue line."""
    part_id: str
    part_item_id: OptionalId = None
    qty: DecimalValue
    unit_cost: DecimalValue = Decimal("0")
    notes: Optional[str] = None


# =============================================================================
# Installation
# =============================================================================

class InstallationRecord(CanonicalBase):
    """One row recording the physical fitting of a part."""
    id: Optional[str] = None
    work_order_id: Optional[str] = None
    part_id: str
    part_item_id: OptionalId = None
    qty_installed: DecimalValue
    odometer_at_install: Optional[DecimalValue] = None
    installed_at: Optional[datetime] = None
    notes: Optional[str] = None


class InstallationRequest(CanonicalBase):
    """Write-side input for a new installation.

    qty_installed may be omitted for a serialized unit; it is forced to 1.
    """
    part_id: str
    part_item_id: OptionalId = None
    qty_installed: Optional[DecimalValue] = None
    odometer: Optional[DecimalValue] = Field(None, alias="odometer_at_install")
    notes: Optional[str] = None


# =============================================================================
# Work Order
# =============================================================================

class WorkOrder(CanonicalBase):
    """Aggregate root owning issue lines, installations and QA result."""
    id: str
    status: WorkOrderStatus = WorkOrderStatus.OPEN
    vehicle_id: Optional[str] = None
    notes: Optional[str] = None
    opened_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completed_by_role: Optional[str] = None
    completion_notes: Optional[str] = None
    canceled_at: Optional[datetime] = None


class QaReport(CanonicalBase):
    """Post-repair QA (road test) report. The latest one counts."""
    work_order_id: str
    result: QaResult
    remarks: Optional[str] = None
    recorded_at: Optional[datetime] = None
    recorded_by_role: Optional[str] = None
