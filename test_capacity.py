"""
Remaining-capacity and write-side validation tests.
"""

from decimal import Decimal

from core.models.canonical import InstallationRequest, IssueLineRequest
from reconciliation.capacity import compute_installable, validate_installation, validate_issue_line
from reconciliation.errors import (
    ErrorCode,
    InvalidOdometer,
    PartNotIssuedOrFullyInstalled,
    QuantityExceedsRemaining,
    SerialAlreadyInstalled,
    SerialRequired,
    ValidationError,
)
from reconciliation.ledger import aggregate


def _installable(lines, installs):
    return compute_installable(aggregate(lines, installs), lines, installs)


def _validate(request, lines, installs):
    return validate_installation(request, _installable(lines, installs), installs)


class TestComputeInstallable:
    """Which parts and serials are still open for installation."""

    def test_fully_installed_part_is_excluded(self, make_line, make_install):
        """Remaining 0 removes the part from the list."""
        rows = _installable([make_line("P1", 2), make_line("P3", 1)], [make_install("P1", 2)])
        assert [r.part_id for r in rows] == ["P3"]

    def test_remaining_within_tolerance_is_excluded(self, make_line, make_install):
        """A remainder below tolerance counts as fully installed."""
        rows = _installable([make_line("P1", "1.0004")], [make_install("P1", 1)])
        assert rows == []

    def test_serials_exclude_installed_ones(self, make_line, make_install):
        """installable_serials lists issued serials not yet installed, in issue order."""
        lines = [make_line("P2", 1, serial="S2"), make_line("P2", 1, serial="S1"), make_line("P2", 1, serial="S3")]
        rows = _installable(lines, [make_install("P2", 1, serial="S1")])
        assert len(rows) == 1
        assert rows[0].remaining_qty == Decimal("2")
        assert rows[0].installable_serials == ["S2", "S3"]

    def test_bulk_part_has_no_serials(self, make_line):
        rows = _installable([make_line("P1", 3)], [])
        assert rows[0].installable_serials == []

    def test_ordered_by_part_id(self, make_line):
        rows = _installable([make_line("C", 1), make_line("A", 1), make_line("B", 1)], [])
        assert [r.part_id for r in rows] == ["A", "B", "C"]


class TestValidateInstallation:
    """Checks run in order and stop at the first failure."""

    def test_valid_bulk_installation(self, make_line):
        """A bulk quantity within remaining is accepted unchanged."""
        result = _validate(InstallationRequest(part_id="P1", qty_installed=2), [make_line("P1", 3)], [])
        assert result.ok
        assert result.value.qty_installed == Decimal("2")

    def test_part_not_issued(self, make_line):
        """Installing a part never issued is refused."""
        result = _validate(InstallationRequest(part_id="PX", qty_installed=1), [make_line("P1", 3)], [])
        assert isinstance(result.error, PartNotIssuedOrFullyInstalled)
        assert result.error.code == ErrorCode.PART_NOT_ISSUED_OR_FULLY_INSTALLED

    def test_part_fully_installed(self, make_line, make_install):
        """Installing a part with nothing remaining is refused."""
        result = _validate(
            InstallationRequest(part_id="P1", qty_installed=1),
            [make_line("P1", 1)],
            [make_install("P1", 1)],
        )
        assert isinstance(result.error, PartNotIssuedOrFullyInstalled)

    def test_quantity_exceeds_remaining(self, make_line, make_install):
        """3 requested with 1 remaining is refused with the remaining quantity in details."""
        result = _validate(
            InstallationRequest(part_id="P1", qty_installed=3),
            [make_line("P1", 3)],
            [make_install("P1", 2)],
        )
        assert isinstance(result.error, QuantityExceedsRemaining)
        assert result.error.details["remaining_qty"] == "1"

    def test_quantity_within_tolerance_is_accepted(self, make_line):
        """Overshoot below tolerance is treated as equal."""
        result = _validate(InstallationRequest(part_id="P1", qty_installed="2.0004"), [make_line("P1", 2)], [])
        assert result.ok

    def test_serial_required_when_serials_remain(self, make_line):
        """Omitting the serial of a serialized part lists the choices."""
        result = _validate(InstallationRequest(part_id="P2", qty_installed=1), [make_line("P2", 1, serial="S1")], [])
        assert isinstance(result.error, SerialRequired)
        assert result.error.details["installable_serials"] == ["S1"]

    def test_unknown_serial_is_serial_required(self, make_line):
        """A serial never issued for the part is refused."""
        result = _validate(
            InstallationRequest(part_id="P2", part_item_id="S9"),
            [make_line("P2", 1, serial="S1")],
            [],
        )
        assert isinstance(result.error, SerialRequired)

    def test_serial_already_installed(self, make_line, make_install):
        """A serial already installed on the work order cannot be installed again."""
        lines = [make_line("P2", 1, serial="S1"), make_line("P2", 1, serial="S2")]
        result = _validate(
            InstallationRequest(part_id="P2", part_item_id="S1"),
            lines,
            [make_install("P2", 1, serial="S1")],
        )
        assert isinstance(result.error, SerialAlreadyInstalled)

    def test_reinstalling_last_serial(self, make_line, make_install):
        """Repeating the install of the only serial reports the serial, not the empty part."""
        result = _validate(
            InstallationRequest(part_id="P2", part_item_id="S1", qty_installed=1),
            [make_line("P2", 1, serial="S1")],
            [make_install("P2", 1, serial="S1")],
        )
        assert isinstance(result.error, SerialAlreadyInstalled)

    def test_serial_quantity_forced_to_one(self, make_line):
        """An omitted serialized quantity is normalized to 1."""
        result = _validate(InstallationRequest(part_id="P2", part_item_id="S1"), [make_line("P2", 1, serial="S1")], [])
        assert result.ok
        assert result.value.qty_installed == Decimal("1")

    def test_serialized_qty_two_is_validation_error(self, make_line):
        """Serialized qty other than 1 fails before capacity checks."""
        result = _validate(
            InstallationRequest(part_id="P2", part_item_id="S1", qty_installed=2),
            [make_line("P2", 1, serial="S1")],
            [],
        )
        assert isinstance(result.error, ValidationError)

    def test_zero_quantity_is_validation_error(self, make_line):
        result = _validate(InstallationRequest(part_id="P1", qty_installed=0), [make_line("P1", 3)], [])
        assert isinstance(result.error, ValidationError)

    def test_missing_bulk_quantity_is_validation_error(self, make_line):
        result = _validate(InstallationRequest(part_id="P1"), [make_line("P1", 3)], [])
        assert isinstance(result.error, ValidationError)

    def test_negative_odometer(self, make_line):
        """Odometer is checked after capacity."""
        result = _validate(
            InstallationRequest(part_id="P1", qty_installed=1, odometer_at_install=-5),
            [make_line("P1", 3)],
            [],
        )
        assert isinstance(result.error, InvalidOdometer)

    def test_capacity_error_wins_over_odometer(self, make_line):
        """With both problems, the earlier check is reported."""
        result = _validate(
            InstallationRequest(part_id="P1", qty_installed=9, odometer_at_install=-5),
            [make_line("P1", 3)],
            [],
        )
        assert isinstance(result.error, QuantityExceedsRemaining)


class TestValidateIssueLine:
    """Boundary checks for new issue lines."""

    def test_valid_line(self):
        assert validate_issue_line(IssueLineRequest(part_id="P1", qty=3, unit_cost="12.50")).ok

    def test_non_positive_qty(self):
        assert isinstance(validate_issue_line(IssueLineRequest(part_id="P1", qty=0)).error, ValidationError)

    def test_negative_cost(self):
        result = validate_issue_line(IssueLineRequest(part_id="P1", qty=1, unit_cost=-1))
        assert isinstance(result.error, ValidationError)

    def test_serialized_line_qty_must_be_one(self):
        result = validate_issue_line(IssueLineRequest(part_id="P2", part_item_id="S1", qty=2))
        assert isinstance(result.error, ValidationError)

    def test_blank_part_id(self):
        assert not validate_issue_line(IssueLineRequest(part_id="  ", qty=1)).ok
