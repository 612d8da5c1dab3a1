"""
Payment Reconciliation Engine

The state machine behind "mark as paid" for recurring obligations.

States per (item, month, year):

    UNSETTLED --settle--> SETTLED (optionally SETTLED_VIA_CARD)
        ^                    |
        +------reverse-------+

No partial payments, no other states.

DESIGN DECISION: Remote first, local last.
Every toggle performs all of its remote writes before touching the
StateContainer. If a later write fails, earlier writes are compensated
(the generated card expense is deleted, a deleted payment is restored) and
the local snapshot is left exactly as it was. Local state is then committed
in ONE dispatch, so readers never see a payment without its generated
expense or the other way around.

CONCURRENCY: The store enforces one settlement row per (item, month, year).
A uniqueness violation means another session won the race; we re-read that
key from the store and report ALREADY_SETTLED instead of failing.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Optional, Union
from uuid import UUID

import structlog
from pydantic import BaseModel, ConfigDict

from household_finance.audit import AuditLogger
from household_finance.models.finance import (
    CreditCardPayment,
    Expense,
    ExpenseType,
    FixedPayment,
    FixedReceipt,
    Installments,
    clamp_day,
    to_money,
    utc_now,
)
from household_finance.services.storage import (
    DuplicateError,
    RemoteStoreInterface,
    StorageError,
    Tables,
)
from household_finance.services.storage.mapping import entity_to_row, row_to_entity
from household_finance.state import (
    AddEntity,
    Batch,
    Collection,
    RemoveEntity,
    ReplaceEntities,
    StateContainer,
)


logger = structlog.get_logger(__name__)


Settlement = Union[FixedPayment, FixedReceipt, CreditCardPayment]


class ToggleOutcome(str, Enum):
    """What a toggle call ended up doing."""
    SETTLED = "settled"
    SETTLED_VIA_CARD = "settled_via_card"
    RECEIVED = "received"
    REVERSED = "reversed"
    ALREADY_SETTLED = "already_settled"
    SKIPPED = "skipped"


class ToggleResult(BaseModel):
    """Outcome of a toggle plus the rows it created or removed."""
    model_config = ConfigDict(frozen=True)

    outcome: ToggleOutcome
    message: str
    settlement: Optional[Settlement] = None
    generated_expense: Optional[Expense] = None

    @property
    def changed(self) -> bool:
        return self.outcome not in (ToggleOutcome.SKIPPED, ToggleOutcome.ALREADY_SETTLED)


class ReconciliationError(Exception):
    """A remote write failed during settle/reverse. Local state is untouched."""

    def __init__(self, message: str, cause: Optional[StorageError] = None):
        super().__init__(message)
        self.cause = cause


class PaymentReconciliationEngine:
    """
    Settles and reverses fixed expenses, fixed incomes and card bills.

    Usage:
        engine = PaymentReconciliationEngine(store, container)
        result = await engine.toggle_fixed_expense_payment(fixed_id, 4, 2024, "150")
    """

    def __init__(
        self,
        store: RemoteStoreInterface,
        container: StateContainer,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._container = container
        self._audit = audit_logger or AuditLogger()
        self._clock = clock

    # =========================================================================
    # FIXED EXPENSES
    # =========================================================================

    async def toggle_fixed_expense_payment(
        self,
        fixed_expense_id: str,
        month: int,
        year: int,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ToggleResult:
        """
        Settle the fixed expense for (month, year), or reverse the settlement.

        Card-linked fixed expenses also get an Expense row on the card bill
        (the generated expense), which is removed again on reversal.

        Raises:
            ReconciliationError: If a remote write fails
        """
        state = self._container.state
        existing = state.find_fixed_payment(fixed_expense_id, month, year)
        if existing:
            return await self._reverse_fixed_expense(existing, correlation_id)

        fixed = state.fixed_expense_by_id(fixed_expense_id)
        if fixed is None:
            logger.warning("fixed_expense_not_found", fixed_expense_id=fixed_expense_id)
            return ToggleResult(
                outcome=ToggleOutcome.SKIPPED,
                message="Fixed expense not found",
            )

        amount = to_money(amount)
        generated: Optional[Expense] = None

        if fixed.credit_card_id:
            card = state.credit_card_by_id(fixed.credit_card_id)
            if card is None:
                # Dangling card link: settle as a cash payment
                logger.warning(
                    "card_fallback_to_cash",
                    fixed_expense_id=fixed.id,
                    credit_card_id=fixed.credit_card_id,
                )
                await self._audit.log_card_fallback_to_cash(
                    fixed.id, fixed.credit_card_id, correlation_id
                )
            else:
                user_id = await self._call(
                    "resolve acting user", self._store.current_user_id(), correlation_id
                )
                generated = await self._insert(
                    Tables.EXPENSES,
                    Expense(
                        description=f"{fixed.name} (Fixo)",
                        amount=amount,
                        date=clamp_day(fixed.due_day, month, year),
                        type=ExpenseType.CARTAO_CREDITO,
                        category=fixed.category,
                        payment_method=card.name,
                        user_id=user_id,
                        installments=Installments(current=1, total=1),
                    ),
                    correlation_id,
                )

        payment = FixedPayment(
            fixed_expense_id=fixed.id,
            month=month,
            year=year,
            amount=amount,
            paid_at=self._clock(),
            generated_expense_id=generated.id if generated else None,
        )
        try:
            payment = await self._insert(
                Tables.FIXED_EXPENSE_PAYMENTS, payment, correlation_id, reraise_duplicate=True
            )
        except DuplicateError:
            if generated:
                await self._compensate_delete(Tables.EXPENSES, generated.id, correlation_id)
            return await self._resolve_conflict(
                Tables.FIXED_EXPENSE_PAYMENTS,
                Collection.FIXED_PAYMENTS,
                {"fixed_expense_id": fixed.id, "month": month, "year": year},
                correlation_id,
            )
        except ReconciliationError:
            if generated:
                await self._compensate_delete(Tables.EXPENSES, generated.id, correlation_id)
            raise

        actions = [AddEntity(collection=Collection.FIXED_PAYMENTS, entity=payment)]
        if generated:
            actions.insert(0, AddEntity(collection=Collection.EXPENSES, entity=generated))
        self._container.dispatch(Batch(actions=tuple(actions)))

        await self._audit.log_fixed_expense_settled(
            fixed_expense_id=fixed.id,
            month=month,
            year=year,
            amount=str(amount),
            generated_expense_id=payment.generated_expense_id,
            correlation_id=correlation_id,
        )

        if generated:
            return ToggleResult(
                outcome=ToggleOutcome.SETTLED_VIA_CARD,
                message=f"Payment recorded and added to the {generated.payment_method} bill",
                settlement=payment,
                generated_expense=generated,
            )
        return ToggleResult(
            outcome=ToggleOutcome.SETTLED,
            message="Payment recorded",
            settlement=payment,
        )

    async def _reverse_fixed_expense(
        self,
        payment: FixedPayment,
        correlation_id: Optional[UUID],
    ) -> ToggleResult:
        await self._delete(Tables.FIXED_EXPENSE_PAYMENTS, payment.id, correlation_id)

        generated_id = payment.generated_expense_id
        if generated_id:
            try:
                await self._delete(Tables.EXPENSES, generated_id, correlation_id)
            except ReconciliationError:
                # Put the payment back so the pair stays consistent
                await self._compensate_restore(
                    Tables.FIXED_EXPENSE_PAYMENTS, payment, correlation_id
                )
                raise

        generated = self._container.state.expense_by_id(generated_id) if generated_id else None
        actions = [RemoveEntity(collection=Collection.FIXED_PAYMENTS, entity_id=payment.id)]
        if generated_id:
            actions.append(RemoveEntity(collection=Collection.EXPENSES, entity_id=generated_id))
        self._container.dispatch(Batch(actions=tuple(actions)))

        await self._audit.log_fixed_expense_reversed(
            fixed_expense_id=payment.fixed_expense_id,
            month=payment.month,
            year=payment.year,
            generated_expense_id=generated_id,
            correlation_id=correlation_id,
        )
        return ToggleResult(
            outcome=ToggleOutcome.REVERSED,
            message="Payment reversed",
            settlement=payment,
            generated_expense=generated,
        )

    # =========================================================================
    # FIXED INCOMES
    # =========================================================================

    async def toggle_fixed_income_receipt(
        self,
        fixed_income_id: str,
        month: int,
        year: int,
        amount: Any,
        correlation_id: Optional[UUID] = None,
    ) -> ToggleResult:
        """
        Mark the fixed income as received for (month, year), or undo it.

        Raises:
            ReconciliationError: If a remote write fails
        """
        state = self._container.state
        existing = state.find_fixed_receipt(fixed_income_id, month, year)
        if existing:
            await self._delete(Tables.FIXED_INCOME_RECEIPTS, existing.id, correlation_id)
            self._container.dispatch(
                RemoveEntity(collection=Collection.FIXED_RECEIPTS, entity_id=existing.id)
            )
            await self._audit.log_fixed_income_toggled(
                fixed_income_id, month, year, received=False, correlation_id=correlation_id
            )
            return ToggleResult(
                outcome=ToggleOutcome.REVERSED,
                message="Receipt reversed",
                settlement=existing,
            )

        if state.fixed_income_by_id(fixed_income_id) is None:
            logger.warning("fixed_income_not_found", fixed_income_id=fixed_income_id)
            return ToggleResult(
                outcome=ToggleOutcome.SKIPPED,
                message="Fixed income not found",
            )

        receipt = FixedReceipt(
            fixed_income_id=fixed_income_id,
            month=month,
            year=year,
            amount=to_money(amount),
            received_at=self._clock(),
        )
        try:
            receipt = await self._insert(
                Tables.FIXED_INCOME_RECEIPTS, receipt, correlation_id, reraise_duplicate=True
            )
        except DuplicateError:
            return await self._resolve_conflict(
                Tables.FIXED_INCOME_RECEIPTS,
                Collection.FIXED_RECEIPTS,
                {"fixed_income_id": fixed_income_id, "month": month, "year": year},
                correlation_id,
            )

        self._container.dispatch(
            AddEntity(collection=Collection.FIXED_RECEIPTS, entity=receipt)
        )
        await self._audit.log_fixed_income_toggled(
            fixed_income_id, month, year, received=True, correlation_id=correlation_id
        )
        return ToggleResult(
            outcome=ToggleOutcome.RECEIVED,
            message="Income marked as received",
            settlement=receipt,
        )

    # =========================================================================
    # CREDIT CARD BILLS
    # =========================================================================

    async def toggle_credit_card_payment(
        self,
        credit_card_id: str,
        month: int,
        year: int,
        amount: Any,
        paid_by: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ToggleResult:
        """
        Mark one card bill (card, month, year) as paid, or reopen it.

        paid_by defaults to the acting user.

        Raises:
            ReconciliationError: If a remote write fails
        """
        state = self._container.state
        existing = state.find_credit_card_payment(credit_card_id, month, year)
        if existing:
            await self._delete(Tables.CREDIT_CARD_PAYMENTS, existing.id, correlation_id)
            self._container.dispatch(
                RemoveEntity(collection=Collection.CREDIT_CARD_PAYMENTS, entity_id=existing.id)
            )
            await self._audit.log_card_bill_toggled(
                credit_card_id, month, year, paid=False, correlation_id=correlation_id
            )
            return ToggleResult(
                outcome=ToggleOutcome.REVERSED,
                message="Card bill reopened",
                settlement=existing,
            )

        if state.credit_card_by_id(credit_card_id) is None:
            logger.warning("credit_card_not_found", credit_card_id=credit_card_id)
            return ToggleResult(
                outcome=ToggleOutcome.SKIPPED,
                message="Credit card not found",
            )

        if paid_by is None:
            paid_by = await self._call(
                "resolve acting user", self._store.current_user_id(), correlation_id
            )

        card_payment = CreditCardPayment(
            credit_card_id=credit_card_id,
            month=month,
            year=year,
            amount=to_money(amount),
            paid_at=self._clock(),
            paid_by=paid_by,
        )
        try:
            card_payment = await self._insert(
                Tables.CREDIT_CARD_PAYMENTS, card_payment, correlation_id, reraise_duplicate=True
            )
        except DuplicateError:
            return await self._resolve_conflict(
                Tables.CREDIT_CARD_PAYMENTS,
                Collection.CREDIT_CARD_PAYMENTS,
                {"credit_card_id": credit_card_id, "month": month, "year": year},
                correlation_id,
            )

        self._container.dispatch(
            AddEntity(collection=Collection.CREDIT_CARD_PAYMENTS, entity=card_payment)
        )
        await self._audit.log_card_bill_toggled(
            credit_card_id, month, year, paid=True, correlation_id=correlation_id
        )
        return ToggleResult(
            outcome=ToggleOutcome.SETTLED,
            message="Card bill marked as paid",
            settlement=card_payment,
        )

    # =========================================================================
    # REMOTE WRITES
    # =========================================================================

    async def _call(self, operation: str, awaitable, correlation_id: Optional[UUID]):
        """Await a store call, translating StorageError into ReconciliationError."""
        try:
            return await awaitable
        except StorageError as e:
            await self._fail(operation, e, correlation_id)

    async def _insert(
        self,
        table: str,
        entity: Any,
        correlation_id: Optional[UUID],
        reraise_duplicate: bool = False,
    ) -> Any:
        """Insert an entity and return it as stored (server id/timestamps)."""
        try:
            row = await self._store.insert(table, entity_to_row(table, entity))
        except DuplicateError as e:
            if reraise_duplicate:
                raise
            await self._fail(f"insert into {table}", e, correlation_id)
        except StorageError as e:
            await self._fail(f"insert into {table}", e, correlation_id)
        return row_to_entity(table, row)

    async def _delete(self, table: str, row_id: str, correlation_id: Optional[UUID]) -> None:
        await self._call(
            f"delete from {table}", self._store.delete(table, row_id), correlation_id
        )

    async def _fail(
        self,
        operation: str,
        error: StorageError,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.error("remote_write_failed", operation=operation, error=str(error))
        await self._audit.log_storage_error(
            operation=operation,
            error_message=str(error),
            correlation_id=correlation_id,
        )
        raise ReconciliationError(f"Failed to {operation}: {error}", cause=error) from error

    async def _compensate_delete(
        self,
        table: str,
        row_id: str,
        correlation_id: Optional[UUID],
    ) -> None:
        """Undo an insert. A failure here is logged; the original error wins."""
        try:
            await self._store.delete(table, row_id)
        except StorageError as e:
            logger.error("compensation_failed", table=table, row_id=row_id, error=str(e))
            await self._audit.log_storage_error(
                operation=f"compensating delete from {table}",
                error_message=str(e),
                details={"row_id": row_id},
                correlation_id=correlation_id,
            )

    async def _compensate_restore(
        self,
        table: str,
        entity: Any,
        correlation_id: Optional[UUID],
    ) -> None:
        """Undo a delete by re-inserting the row with its original id."""
        try:
            await self._store.insert(table, entity_to_row(table, entity))
        except StorageError as e:
            logger.error("compensation_failed", table=table, row_id=entity.id, error=str(e))
            await self._audit.log_storage_error(
                operation=f"compensating insert into {table}",
                error_message=str(e),
                details={"row_id": entity.id},
                correlation_id=correlation_id,
            )

    async def _resolve_conflict(
        self,
        table: str,
        collection: Collection,
        key: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> ToggleResult:
        """
        Another session settled this key first: adopt what the store holds.

        Generated expenses of the adopted payments are fetched too, so the
        card bill stays complete.
        """
        rows = await self._call(
            f"refresh {table}", self._store.query(table, key), correlation_id
        )
        settlements = tuple(row_to_entity(table, row) for row in rows)

        actions = [ReplaceEntities(collection=collection, match=key, entities=settlements)]
        for settlement in settlements:
            generated_id = getattr(settlement, "generated_expense_id", None)
            if not generated_id:
                continue
            expense_rows = await self._call(
                f"refresh {Tables.EXPENSES}",
                self._store.query(Tables.EXPENSES, {"id": generated_id}),
                correlation_id,
            )
            actions.append(ReplaceEntities(
                collection=Collection.EXPENSES,
                match={"id": generated_id},
                entities=tuple(
                    row_to_entity(Tables.EXPENSES, row) for row in expense_rows
                ),
            ))
        self._container.dispatch(Batch(actions=tuple(actions)))

        entity_id = next(iter(key.values()))
        logger.warning("settlement_conflict", table=table, **key)
        await self._audit.log_settlement_conflict(
            table=table,
            entity_id=entity_id,
            month=key["month"],
            year=key["year"],
            correlation_id=correlation_id,
        )
        return ToggleResult(
            outcome=ToggleOutcome.ALREADY_SETTLED,
            message="Already settled by another session",
            settlement=settlements[0] if settlements else None,
        )
