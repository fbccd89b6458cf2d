"""Error taxonomy and Result type for the reconciliation engine.

Write validation and the completion gate return a Result instead of raising,
so the host can map each error code to a message without string matching.
Only DataIntegrityError is raised: it signals corrupted stored records.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar


T = TypeVar("T")


class ErrorCode(str, Enum):
    """Stable error codes exposed to host services."""
    VALIDATION_ERROR = "VALIDATION_ERROR"
    PART_NOT_ISSUED_OR_FULLY_INSTALLED = "PART_NOT_ISSUED_OR_FULLY_INSTALLED"
    SERIAL_REQUIRED = "SERIAL_REQUIRED"
    SERIAL_ALREADY_INSTALLED = "SERIAL_ALREADY_INSTALLED"
    QUANTITY_EXCEEDS_REMAINING = "QUANTITY_EXCEEDS_REMAINING"
    INVALID_ODOMETER = "INVALID_ODOMETER"
    NOT_RECONCILED_OR_QA_PENDING = "NOT_RECONCILED_OR_QA_PENDING"
    ALREADY_TERMINAL = "ALREADY_TERMINAL"
    FORBIDDEN = "FORBIDDEN"
    WORK_ORDER_NOT_FOUND = "WORK_ORDER_NOT_FOUND"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"


class EngineError(Exception):
    """Base class for all engine errors."""

    code: ErrorCode = ErrorCode.VALIDATION_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def __eq__(self, other) -> bool:
        if not isinstance(other, EngineError):
            return NotImplemented
        return type(self) is type(other) and self.to_dict() == other.to_dict()

    def __hash__(self) -> int:
        return hash((type(self), self.message))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r})"


class ValidationError(EngineError):
    """Malformed write input (e.g. serialized line with qty != 1)."""
    code = ErrorCode.VALIDATION_ERROR


class PartNotIssuedOrFullyInstalled(EngineError):
    code = ErrorCode.PART_NOT_ISSUED_OR_FULLY_INSTALLED


class SerialRequired(EngineError):
    code = ErrorCode.SERIAL_REQUIRED


class SerialAlreadyInstalled(EngineError):
    code = ErrorCode.SERIAL_ALREADY_INSTALLED


class QuantityExceedsRemaining(EngineError):
    code = ErrorCode.QUANTITY_EXCEEDS_REMAINING


class InvalidOdometer(EngineError):
    code = ErrorCode.INVALID_ODOMETER


class NotReconciledOrQaPending(EngineError):
    """Completion attempted while the report status is not OK.

    Carries the actual status and a remediation hint for the caller.
    """
    code = ErrorCode.NOT_RECONCILED_OR_QA_PENDING

    HINTS = {
        "NEEDS_PARTS_RECONCILIATION": "Issued and installed parts do not match. Fix the mismatch before QA or completion.",
        "NEEDS_QA": "Record a QA road test result before completing.",
        "QA_FAILED": "QA failed. Rework the vehicle and record a passing QA result.",
    }

    def __init__(self, report_status, message: Optional[str] = None):
        status_value = getattr(report_status, "value", report_status)
        self.report_status = report_status
        self.hint = self.HINTS.get(status_value)
        super().__init__(
            message or f"Work order cannot proceed while report status is {status_value}",
            {"report_status": status_value, "hint": self.hint},
        )


class AlreadyTerminal(EngineError):
    code = ErrorCode.ALREADY_TERMINAL


class Forbidden(EngineError):
    code = ErrorCode.FORBIDDEN


class WorkOrderNotFound(EngineError):
    code = ErrorCode.WORK_ORDER_NOT_FOUND


class DataIntegrityError(EngineError):
    """Stored records violate an invariant (negative quantity, bad serial line)."""
    code = ErrorCode.DATA_INTEGRITY_ERROR


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of an engine operation: a value or a typed error, never both."""
    value: Optional[T] = None
    error: Optional[EngineError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: EngineError) -> "Result[T]":
        return cls(error=error)

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value
