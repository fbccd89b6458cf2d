"""Remaining-capacity calculation and write-side validation.

compute_installable() is the contract the installation form consumes: which
parts (and which serialized units) may still be installed on a work order.
validate_installation() re-checks a request against it and must run against
freshly loaded records inside the same transaction as the write.
"""

from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Set

from core.models.canonical import (
    InstallationRecord,
    InstallationRequest,
    IssuedLine,
    IssueLineRequest,
)
from core.models.reports import InstallableRow
from reconciliation.errors import (
    InvalidOdometer,
    PartNotIssuedOrFullyInstalled,
    QuantityExceedsRemaining,
    Result,
    SerialAlreadyInstalled,
    SerialRequired,
    ValidationError,
)
from reconciliation.ledger import Ledger
from reconciliation.units import SERIAL_QTY, validate_unit_quantity


QTY_TOLERANCE = Decimal("0.0005")
ZERO = Decimal("0")


def installed_serials(installations: Iterable[InstallationRecord]) -> Set[str]:
    """All part_item_ids already installed on the work order."""
    return {r.part_item_id for r in installations if r.part_item_id}


def issued_serials(issued_lines: Iterable[IssuedLine], part_id: str) -> List[str]:
    """Serials issued for a part, de-duplicated, in first-issued order."""
    seen: Set[str] = set()
    serials: List[str] = []
    for line in issued_lines:
        if line.part_id != part_id or not line.part_item_id:
            continue
        if line.part_item_id in seen:
            continue
        seen.add(line.part_item_id)
        serials.append(line.part_item_id)
    return serials


def compute_installable(
    ledger: Ledger,
    issued_lines: Sequence[IssuedLine],
    installations: Sequence[InstallationRecord],
) -> List[InstallableRow]:
    """List parts with remaining quantity, ordered by part_id."""
    already_installed = installed_serials(installations)
    rows: List[InstallableRow] = []

    for part_id, entry in ledger.items():
        if entry.remaining_qty <= QTY_TOLERANCE:
            continue
        serials = [s for s in issued_serials(issued_lines, part_id) if s not in already_installed]
        rows.append(InstallableRow(
            part_id=part_id,
            issued_qty=entry.issued_qty,
            installed_qty=entry.installed_qty,
            remaining_qty=entry.remaining_qty,
            installable_serials=serials,
        ))

    rows.sort(key=lambda r: r.part_id)
    return rows


def _find_row(installable: Sequence[InstallableRow], part_id: str) -> Optional[InstallableRow]:
    for row in installable:
        if row.part_id == part_id:
            return row
    return None


def validate_installation(
    request: InstallationRequest,
    installable: Sequence[InstallableRow],
    installations: Sequence[InstallationRecord],
) -> Result[InstallationRequest]:
    """Validate an installation request against current capacity.

    Checks run in a fixed order and stop at the first failure:
    0. a serial is never installed twice on the work order
    1. the part must still be installable
    2. serial rules (required when serials remain, must be an issued one)
    3. quantity must fit the remaining quantity
    4. odometer must not be negative

    Returns:
        Result holding the normalized request (serialized quantity forced to 1)
    """
    # Malformed input never reaches the capacity checks
    unit_error = validate_unit_quantity(request)
    if unit_error is not None:
        return Result.failure(unit_error)
    if request.qty_installed is not None and request.qty_installed <= ZERO:
        return Result.failure(ValidationError(
            f"qty_installed must be greater than 0, got {request.qty_installed}",
            {"part_id": request.part_id, "qty_installed": str(request.qty_installed)},
        ))

    # A serial installs at most once, even when that emptied the part's row
    if request.part_item_id and request.part_item_id in installed_serials(installations):
        return Result.failure(SerialAlreadyInstalled(
            f"Serial {request.part_item_id} is already installed on this work order",
            {"part_id": request.part_id, "part_item_id": request.part_item_id},
        ))

    # 1. Part must be issued with something left to install
    row = _find_row(installable, request.part_id)
    if row is None:
        return Result.failure(PartNotIssuedOrFullyInstalled(
            f"Part {request.part_id} was not issued to this work order or is fully installed",
            {"part_id": request.part_id},
        ))

    # 2. Serial rules
    qty = request.qty_installed
    if request.part_item_id:
        if request.part_item_id not in row.installable_serials:
            return Result.failure(SerialRequired(
                f"Serial {request.part_item_id} was not issued for part {request.part_id}",
                {
                    "part_id": request.part_id,
                    "part_item_id": request.part_item_id,
                    "installable_serials": list(row.installable_serials),
                },
            ))
        qty = SERIAL_QTY
    elif row.installable_serials:
        return Result.failure(SerialRequired(
            f"Part {request.part_id} is serialized; choose one of the issued serials",
            {"part_id": request.part_id, "installable_serials": list(row.installable_serials)},
        ))

    # 3. Quantity must fit
    if qty is None:
        return Result.failure(ValidationError(
            f"qty_installed is required for bulk part {request.part_id}",
            {"part_id": request.part_id},
        ))
    if qty - row.remaining_qty > QTY_TOLERANCE:
        return Result.failure(QuantityExceedsRemaining(
            f"Quantity {qty} exceeds remaining {row.remaining_qty} for part {request.part_id}",
            {
                "part_id": request.part_id,
                "qty_installed": str(qty),
                "remaining_qty": str(row.remaining_qty),
            },
        ))

    # 4. Odometer
    if request.odometer is not None and request.odometer < ZERO:
        return Result.failure(InvalidOdometer(
            f"Odometer must be >= 0, got {request.odometer}",
            {"odometer": str(request.odometer)},
        ))

    return Result.success(request.model_copy(update={"qty_installed": qty}))


def validate_issue_line(request: IssueLineRequest) -> Result[IssueLineRequest]:
    """Validate a new issue line before it is appended."""
    if not request.part_id or not request.part_id.strip():
        return Result.failure(ValidationError("part_id is required"))
    if request.qty is None or request.qty <= ZERO:
        return Result.failure(ValidationError(
            f"qty must be greater than 0, got {request.qty}",
            {"part_id": request.part_id, "qty": None if request.qty is None else str(request.qty)},
        ))
    if request.unit_cost is None or request.unit_cost < ZERO:
        return Result.failure(ValidationError(
            f"unit_cost must be >= 0, got {request.unit_cost}",
            {"part_id": request.part_id},
        ))
    unit_error = validate_unit_quantity(request)
    if unit_error is not None:
        return Result.failure(unit_error)
    return Result.success(request)
