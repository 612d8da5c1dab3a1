"""
Audit Logger

DESIGN DECISION: Every action that moves money state is logged.
This provides:
1. Complete traceability of settlements and reversals
2. Debugging capability when a remote write fails half-way
3. A history of who changed what in the shared wallet

The audit logger:
- Is async so it can persist through the same remote store
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from household_finance.models.audit import AuditEvent, AuditEventBuilder
from household_finance.services.storage import RemoteStoreInterface, Tables


def configure_logging(level: str = "INFO", json: bool = True) -> None:
    """
    Configure structlog on top of the standard logging module.

    Safe to call more than once; the last call wins.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper(), logging.INFO),
        force=True,
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The audit_events table of the remote store (when persisting is on)
    """

    def __init__(
        self,
        store: Optional[RemoteStoreInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Remote store used for persistence.
                   If None, only logs locally.
        """
        self._store = store
        self._logger = structlog.get_logger("household_finance.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to the store if available.

        Returns True if the store write succeeded (or no store configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store:
            try:
                await self._store.insert(Tables.AUDIT_EVENTS, event.to_row())
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_data_loaded(
        self,
        counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.data_loaded(counts, correlation_id))

    async def log_entity_created(
        self,
        table: str,
        entity_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.entity_created(table, entity_id, correlation_id))

    async def log_entity_updated(
        self,
        table: str,
        entity_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.entity_updated(table, entity_id, fields, correlation_id)
        )

    async def log_fixed_expense_settled(
        self,
        fixed_expense_id: str,
        month: int,
        year: int,
        amount: str,
        generated_expense_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a fixed expense settlement (cash or card)."""
        event = AuditEventBuilder.fixed_expense_settled(
            fixed_expense_id=fixed_expense_id,
            month=month,
            year=year,
            amount=amount,
            generated_expense_id=generated_expense_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_fixed_expense_reversed(
        self,
        fixed_expense_id: str,
        month: int,
        year: int,
        generated_expense_id: Optional[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.fixed_expense_reversed(
            fixed_expense_id=fixed_expense_id,
            month=month,
            year=year,
            generated_expense_id=generated_expense_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_fixed_income_toggled(
        self,
        fixed_income_id: str,
        month: int,
        year: int,
        received: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.fixed_income_toggled(
            fixed_income_id=fixed_income_id,
            month=month,
            year=year,
            received=received,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_card_bill_toggled(
        self,
        credit_card_id: str,
        month: int,
        year: int,
        paid: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.card_bill_toggled(
            credit_card_id=credit_card_id,
            month=month,
            year=year,
            paid=paid,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_settlement_conflict(
        self,
        table: str,
        entity_id: str,
        month: int,
        year: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a settlement that lost the race to another session."""
        event = AuditEventBuilder.settlement_conflict(
            table=table,
            entity_id=entity_id,
            month=month,
            year=year,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_card_fallback_to_cash(
        self,
        fixed_expense_id: str,
        credit_card_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        event = AuditEventBuilder.card_fallback_to_cash(
            fixed_expense_id=fixed_expense_id,
            credit_card_id=credit_card_id,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a failed remote write."""
        event = AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., settling a bill).
    Pass it through all subsequent operations.
    """
    return uuid4()
