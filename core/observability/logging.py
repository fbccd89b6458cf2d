"""
Structured Logging with Correlation IDs

Every record emitted while a work-order operation is running carries the
operation's correlation fields:
- work_order_id / part_id / issue_id: which records the operation touches
- actor_role: role that triggered it
- request_id: HTTP request, when called through the API
- workflow_id / activity_name: Temporal closeout execution, when run by a worker

Usage:
    from core.observability.logging import get_logger, with_correlation

    logger = get_logger(__name__)

    with with_correlation(work_order_id="WO-1001", actor_role="ADMIN"):
        logger.info("Installations recorded", extra_fields={"item_count": 2})
"""

import json
import logging
import sys
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, fields, replace
from datetime import datetime
from typing import Any, Dict, Iterator, Optional


# =============================================================================
# Correlation Context
# =============================================================================

@dataclass(frozen=True)
class CorrelationContext:
    """Identifiers shared by every log line of one operation."""
    work_order_id: Optional[str] = None
    part_id: Optional[str] = None
    issue_id: Optional[str] = None
    actor_role: Optional[str] = None
    request_id: Optional[str] = None
    workflow_id: Optional[str] = None
    activity_name: Optional[str] = None
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Set fields only."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    def merge(self, **kwargs) -> "CorrelationContext":
        """Copy with the given non-None fields overridden."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})


_current: ContextVar[CorrelationContext] = ContextVar("correlation_context", default=CorrelationContext())


def get_correlation_context() -> CorrelationContext:
    return _current.get()


@contextmanager
def with_correlation(**kwargs) -> Iterator[CorrelationContext]:
    """
    Add correlation fields for the duration of the block.

    Nested blocks extend the outer context; leaving a block restores it.

    Usage:
        with with_correlation(work_order_id="WO-1001"):
            with with_correlation(part_id="P1"):
                logger.warning("Serial required")  # work_order_id and part_id
    """
    token = _current.set(_current.get().merge(**kwargs))
    try:
        yield _current.get()
    finally:
        _current.reset(token)


class CorrelationFilter(logging.Filter):
    """Stamp the active correlation context onto each record.

    Records are stamped when handled, on the thread that logged them, so the
    formatters do not depend on where formatting happens.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation"):
            record.correlation = get_correlation_context().to_dict()
        if not hasattr(record, "extra_fields"):
            record.extra_fields = {}
        return True


# =============================================================================
# Formatters
# =============================================================================

def _correlation_of(record: logging.LogRecord) -> Dict[str, Any]:
    correlation = getattr(record, "correlation", None)
    if correlation is None:
        correlation = get_correlation_context().to_dict()
    return correlation


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per line.

    {"timestamp": "2026-01-09T12:00:00.000000Z", "level": "WARNING",
     "logger": "reconciliation.service", "message": "add_installations rejected: ...",
     "work_order_id": "WO-1001", "operation": "add_installations",
     "error_code": "SERIAL_ALREADY_INSTALLED"}
    """

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.utcfromtimestamp(record.created).isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(_correlation_of(record))
        payload.update(getattr(record, "extra_fields", None) or {})
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Console format with the work order, part and role up front.

    2026-01-09 12:00:00 WARNING reconciliation.service [WO-1001 part=P2 role=MECHANIC] Serial required error_code=SERIAL_REQUIRED
    """

    LABELS = (("part_id", "part"), ("issue_id", "issue"), ("actor_role", "role"), ("workflow_id", "wf"))

    def format(self, record: logging.LogRecord) -> str:
        correlation = _correlation_of(record)
        tags = [correlation.get("work_order_id", "-")]
        tags.extend(f"{label}={correlation[key]}" for key, label in self.LABELS if key in correlation)

        stamp = datetime.utcfromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S")
        line = f"{stamp} {record.levelname:<7} {record.name} [{' '.join(tags)}] {record.getMessage()}"

        extra = getattr(record, "extra_fields", None)
        if extra:
            line += " " + " ".join(f"{k}={v}" for k, v in extra.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


# =============================================================================
# Logger with Structured Fields
# =============================================================================

class CorrelatedLogger(logging.LoggerAdapter):
    """
    Logger accepting extra_fields=... on every call.

    logger.warning("Quantity exceeds remaining", extra_fields={"remaining_qty": "1"})
    """

    def __init__(self, logger: logging.Logger):
        super().__init__(logger, {})

    def process(self, msg, kwargs):
        extra = dict(kwargs.pop("extra", None) or {})
        extra["extra_fields"] = kwargs.pop("extra_fields", None) or {}
        kwargs["extra"] = extra
        return msg, kwargs


# =============================================================================
# Setup
# =============================================================================

APP_LOGGERS = ("reconciliation", "storage", "activities", "workflows", "api", "core", "workers")

_loggers: Dict[str, CorrelatedLogger] = {}
_handler: Optional[logging.Handler] = None


def configure_logging(level: Optional[int] = None, json_format: Optional[bool] = None):
    """
    Install the console handler once per process.

    Args:
        level: Logging level (defaults to FLEET_LOG_LEVEL)
        json_format: JSON lines instead of console format (defaults to FLEET_LOG_JSON)
    """
    global _handler
    if _handler is not None:
        return

    from core.config import get_settings

    settings = get_settings()
    if level is None:
        level = logging.getLevelName(settings.log_level)
        if not isinstance(level, int):
            level = logging.INFO
    if json_format is None:
        json_format = settings.log_json

    _handler = logging.StreamHandler(sys.stdout)
    _handler.setLevel(level)
    _handler.addFilter(CorrelationFilter())
    _handler.setFormatter(StructuredFormatter() if json_format else HumanReadableFormatter())

    root = logging.getLogger()
    root.setLevel(level)
    root.addHandler(_handler)

    for name in APP_LOGGERS:
        logging.getLogger(name).setLevel(level)

    # Third-party noise
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("temporalio").setLevel(logging.INFO)


def get_logger(name: str) -> CorrelatedLogger:
    """Correlated logger for a module (pass __name__)."""
    logger = _loggers.get(name)
    if logger is None:
        configure_logging()
        logger = _loggers[name] = CorrelatedLogger(logging.getLogger(name))
    return logger
