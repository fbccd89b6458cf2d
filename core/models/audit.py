"""Audit event models for tracking work-order actions."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from core.models.canonical import utc_now


class AuditSeverity(str, Enum):
    """Severity levels for audit events."""
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    BLOCK = "BLOCK"


class AuditEvent(BaseModel):
    """An audit event for tracking actions against a work order.

    Provides traceability of every issuance, installation, QA report and
    completion attempt, including rejected ones.
    """
    event_id: str = Field(..., description="Unique event identifier")
    timestamp: datetime = Field(default_factory=utc_now, description="Event timestamp")
    event_type: str = Field(..., description="Type of event (INSTALLATION_RECORDED, WORK_ORDER_COMPLETED, etc.)")
    severity: AuditSeverity = Field(default=AuditSeverity.INFO, description="Event severity")

    # Context
    work_order_id: Optional[str] = Field(None, description="Associated work order")
    part_id: Optional[str] = Field(None, description="Associated part")
    workflow_id: Optional[str] = Field(None, description="Temporal workflow ID")

    # Details
    message: str = Field(..., description="Human-readable message")
    details: dict = Field(default_factory=dict, description="Additional event details")

    # Actor
    actor: str = Field(default="system", description="Role or service that performed the action")
