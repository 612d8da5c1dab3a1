"""
Audit Models for the Household Finance Engine

Every action that changes money state is logged for audit purposes.
This provides:
1. Traceability of who settled what, and when
2. Debugging information when a remote write fails half-way
3. A way to reconstruct the history of a month

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from household_finance.models.finance import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Loading
    DATA_LOADED = "data_loaded"

    # Entity CRUD
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"

    # Settlement
    FIXED_EXPENSE_SETTLED = "fixed_expense_settled"
    FIXED_EXPENSE_REVERSED = "fixed_expense_reversed"
    FIXED_INCOME_RECEIVED = "fixed_income_received"
    FIXED_INCOME_REVERSED = "fixed_income_reversed"
    CARD_BILL_PAID = "card_bill_paid"
    CARD_BILL_REVERSED = "card_bill_reversed"
    SETTLEMENT_CONFLICT = "settlement_conflict"
    CARD_FALLBACK_TO_CASH = "card_fallback_to_cash"

    # System events
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Table of the entity (e.g., 'fixed_expenses')"
    )
    entity_id: Optional[str] = None

    # Correlation - all events of one user action share an ID
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_row(self) -> dict:
        """Convert to a flat row for the audit_events table."""
        return {
            "id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details_json": json.dumps(self.details, default=str) if self.details else None,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.fixed_expense_settled(payment, via_card=True, ...)
    """

    @staticmethod
    def data_loaded(
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_LOADED,
            correlation_id=correlation_id,
            description=f"Loaded {sum(counts.values())} rows from the data store",
            details=counts,
        )

    @staticmethod
    def entity_created(
        table: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_CREATED,
            entity_type=table,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Created {table} row",
            is_user_action=True,
        )

    @staticmethod
    def entity_updated(
        table: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ENTITY_UPDATED,
            entity_type=table,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Updated {table} row",
            details={"fields": fields},
            is_user_action=True,
        )

    @staticmethod
    def fixed_expense_settled(
        fixed_expense_id: str,
        month: int,
        year: int,
        amount: str,
        generated_expense_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        via = "credit card" if generated_expense_id else "cash"
        return AuditEvent(
            event_type=AuditEventType.FIXED_EXPENSE_SETTLED,
            entity_type="fixed_expenses",
            entity_id=fixed_expense_id,
            correlation_id=correlation_id,
            description=f"Fixed expense settled for {month + 1:02d}/{year} via {via}",
            details={
                "month": month,
                "year": year,
                "amount": amount,
                "generated_expense_id": generated_expense_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def fixed_expense_reversed(
        fixed_expense_id: str,
        month: int,
        year: int,
        generated_expense_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FIXED_EXPENSE_REVERSED,
            entity_type="fixed_expenses",
            entity_id=fixed_expense_id,
            correlation_id=correlation_id,
            description=f"Fixed expense payment reversed for {month + 1:02d}/{year}",
            details={
                "month": month,
                "year": year,
                "generated_expense_id": generated_expense_id,
            },
            is_user_action=True,
        )

    @staticmethod
    def fixed_income_toggled(
        fixed_income_id: str,
        month: int,
        year: int,
        received: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.FIXED_INCOME_RECEIVED
                if received
                else AuditEventType.FIXED_INCOME_REVERSED
            ),
            entity_type="fixed_incomes",
            entity_id=fixed_income_id,
            correlation_id=correlation_id,
            description=(
                f"Fixed income {'received' if received else 'marked pending'} "
                f"for {month + 1:02d}/{year}"
            ),
            details={"month": month, "year": year},
            is_user_action=True,
        )

    @staticmethod
    def card_bill_toggled(
        credit_card_id: str,
        month: int,
        year: int,
        paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.CARD_BILL_PAID
                if paid
                else AuditEventType.CARD_BILL_REVERSED
            ),
            entity_type="credit_cards",
            entity_id=credit_card_id,
            correlation_id=correlation_id,
            description=(
                f"Card bill {'paid' if paid else 'reopened'} for {month + 1:02d}/{year}"
            ),
            details={"month": month, "year": year},
            is_user_action=True,
        )

    @staticmethod
    def settlement_conflict(
        table: str,
        entity_id: str,
        month: int,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_CONFLICT,
            severity=AuditSeverity.WARNING,
            entity_type=table,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"Already settled for {month + 1:02d}/{year} by another session",
            details={"month": month, "year": year},
        )

    @staticmethod
    def card_fallback_to_cash(
        fixed_expense_id: str,
        credit_card_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.CARD_FALLBACK_TO_CASH,
            severity=AuditSeverity.WARNING,
            entity_type="fixed_expenses",
            entity_id=fixed_expense_id,
            correlation_id=correlation_id,
            description="Linked credit card not found, settled as a cash payment",
            details={"credit_card_id": credit_card_id},
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
