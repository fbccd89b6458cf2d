"""Ledger aggregation.

Reduces raw issue lines and installation records of one work order into
per-part quantity totals. Pure: no I/O, same inputs give the same ledger.
"""

from decimal import Decimal
from typing import Dict, Iterable

from core.models.canonical import InstallationRecord, IssuedLine
from core.models.reports import PartLedgerEntry
from reconciliation.errors import DataIntegrityError
from reconciliation.units import is_serialized, quantity_of, SERIAL_QTY


ZERO = Decimal("0")

Ledger = Dict[str, PartLedgerEntry]


def _check_stored_quantity(item, kind: str) -> Decimal:
    """Return the record quantity, raising on values writes could never produce."""
    qty = quantity_of(item)
    if qty is None or qty < ZERO:
        raise DataIntegrityError(
            f"{kind} for part {item.part_id} has invalid quantity {qty}",
            {"part_id": item.part_id, "record_id": item.id, "qty": None if qty is None else str(qty)},
        )
    if is_serialized(item) and qty != SERIAL_QTY:
        raise DataIntegrityError(
            f"Serialized {kind.lower()} {item.part_item_id} has quantity {qty}",
            {"part_id": item.part_id, "part_item_id": item.part_item_id, "qty": str(qty)},
        )
    return qty


def aggregate(
    issued_lines: Iterable[IssuedLine],
    installations: Iterable[InstallationRecord],
) -> Ledger:
    """Sum issued and installed quantities per part.

    remaining_qty is issued minus installed and is left negative when more was
    installed than issued; the reconciliation step reports that as an anomaly.

    Returns:
        Mapping of part_id to PartLedgerEntry, ordered by part_id

    Raises:
        DataIntegrityError: a stored record has a negative quantity or a
            serialized record has a quantity other than 1
    """
    issued: Dict[str, Decimal] = {}
    installed: Dict[str, Decimal] = {}

    for line in issued_lines:
        qty = _check_stored_quantity(line, "Issue line")
        issued[line.part_id] = issued.get(line.part_id, ZERO) + qty

    for record in installations:
        qty = _check_stored_quantity(record, "Installation")
        installed[record.part_id] = installed.get(record.part_id, ZERO) + qty

    ledger: Ledger = {}
    for part_id in sorted(set(issued) | set(installed)):
        issued_qty = issued.get(part_id, ZERO)
        installed_qty = installed.get(part_id, ZERO)
        ledger[part_id] = PartLedgerEntry(
            part_id=part_id,
            issued_qty=issued_qty,
            installed_qty=installed_qty,
            remaining_qty=issued_qty - installed_qty,
        )
    return ledger
