"""Unit-mode classification.

The single place that decides whether a line or record is a serialized unit
or bulk stock. Serialized means a part_item_id is present; its quantity is
always exactly 1.
"""

from decimal import Decimal
from typing import Optional, Union

from core.models.canonical import (
    InstallationRecord,
    InstallationRequest,
    IssuedLine,
    IssueLineRequest,
    UnitMode,
)
from reconciliation.errors import ValidationError


SERIAL_QTY = Decimal("1")

UnitCarrier = Union[IssuedLine, IssueLineRequest, InstallationRecord, InstallationRequest]


def classify(item: UnitCarrier) -> UnitMode:
    """Classify a line or record by presence of part_item_id."""
    if item.part_item_id:
        return UnitMode.SERIALIZED
    return UnitMode.BULK


def is_serialized(item: UnitCarrier) -> bool:
    return classify(item) == UnitMode.SERIALIZED


def quantity_of(item: UnitCarrier) -> Optional[Decimal]:
    """Quantity field of a line or record, whatever it is called."""
    if isinstance(item, (InstallationRecord, InstallationRequest)):
        return item.qty_installed
    return item.qty


def validate_unit_quantity(item: UnitCarrier) -> Optional[ValidationError]:
    """Check the serialization rule. Returns an error or None."""
    if not is_serialized(item):
        return None
    qty = quantity_of(item)
    if qty is not None and qty != SERIAL_QTY:
        return ValidationError(
            f"Serialized unit {item.part_item_id} must have quantity 1, got {qty}",
            {"part_id": item.part_id, "part_item_id": item.part_item_id, "qty": str(qty)},
        )
    return None
