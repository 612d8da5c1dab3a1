"""
Main Orchestrator for the Household Finance Engine

This module ties together all the components and defines the
end-to-end flows for:
1. Loading (remote store → rows → entities → one LoadData transition)
2. Commands (create/update entities, settle/reverse obligations)
3. Views (dashboard, card bills, projection, reports)

DESIGN DECISION: The orchestrator enforces the boundaries:
- Remote writes happen first; local state changes only after they succeed
- The StateContainer is owned here and mutated only through dispatch()
- Every command is audited under one correlation id

This is the "glue" that keeps the in-memory snapshot consistent with the
data store even when individual writes fail.
"""

from datetime import date, datetime
from typing import Any, Callable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from household_finance.audit import AuditLogger, configure_logging, create_correlation_id
from household_finance.config import AppSettings, get_settings
from household_finance.engine import (
    PaymentReconciliationEngine,
    ToggleResult,
    build_period_report,
    get_active_fixed_expenses,
    get_active_fixed_incomes,
    get_card_bill,
    get_cards_overview,
    get_current_balance,
    get_dashboard_data,
    get_monthly_data,
    get_total_investments,
    get_weighted_average_yield,
    monthly_evolution,
    project_finances,
    split_installments,
)
from household_finance.models import (
    CASH_PAYMENT_METHODS,
    ActiveFixedExpense,
    ActiveFixedIncome,
    CardBillSummary,
    CardsOverview,
    CashMovement,
    CashMovementType,
    CreditCard,
    DashboardData,
    Expense,
    ExpenseCategory,
    ExpenseType,
    FinancialSettings,
    FixedExpense,
    FixedIncome,
    Investment,
    MonthlyData,
    MonthlyEvolutionPoint,
    MonthlyFilter,
    PeriodReport,
    ProjectionPoint,
    ReportFilters,
    User,
)
from household_finance.models.finance import utc_now
from household_finance.services.storage import (
    AuthenticationError,
    ConnectionError,
    InMemoryRemoteStore,
    RemoteStoreInterface,
    StorageError,
    SupabaseClient,
    SupabaseRemoteStore,
    Tables,
)
from household_finance.services.storage.mapping import entity_to_row, row_to_entity
from household_finance.state import (
    AddEntity,
    Batch,
    Collection,
    FinanceState,
    LoadData,
    SetLoading,
    SetSelectedMonth,
    StateContainer,
    UpdateEntity,
    UpdateSettings,
)


logger = structlog.get_logger(__name__)


# Table loaded into each LoadData field at refresh time
LOAD_PLAN: dict[str, str] = {
    "users": Tables.USERS,
    "expenses": Tables.EXPENSES,
    "fixed_expenses": Tables.FIXED_EXPENSES,
    "fixed_incomes": Tables.FIXED_INCOMES,
    "credit_cards": Tables.CREDIT_CARDS,
    "cash_movements": Tables.CASH_MOVEMENTS,
    "investments": Tables.INVESTMENTS,
    "fixed_payments": Tables.FIXED_EXPENSE_PAYMENTS,
    "fixed_receipts": Tables.FIXED_INCOME_RECEIPTS,
    "credit_card_payments": Tables.CREDIT_CARD_PAYMENTS,
}


class FinanceServiceError(Exception):
    """A create/update command failed remotely. Local state is untouched."""
    pass


class FinanceService:
    """
    Coordinator of the finance engine.

    Owns the StateContainer; every change flows through a remote write
    and then a single dispatch. Views are recomputed on every call.
    """

    def __init__(
        self,
        store: RemoteStoreInterface,
        container: Optional[StateContainer] = None,
        audit_logger: Optional[AuditLogger] = None,
        app_settings: Optional[AppSettings] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._container = container or StateContainer()
        self._audit = audit_logger or AuditLogger()
        self._app_settings = app_settings or AppSettings()
        self._clock = clock
        self._reconciliation = PaymentReconciliationEngine(
            store=store,
            container=self._container,
            audit_logger=self._audit,
            clock=clock,
        )

    @property
    def state(self) -> FinanceState:
        return self._container.state

    # =========================================================================
    # LOADING
    # =========================================================================

    async def refresh_data(self, correlation_id: Optional[UUID] = None) -> FinanceState:
        """
        Reload every collection from the store and replace the snapshot.

        All or nothing: if the acting user can't be resolved, or any table
        fails to load, the previous snapshot is kept.

        Raises:
            AuthenticationError: If there is no authenticated user
            StorageError: If a table can't be read
        """
        correlation_id = correlation_id or create_correlation_id()
        self._container.dispatch(SetLoading(loading=True))
        try:
            user_id = await self._store.current_user_id()
            if user_id is None:
                raise AuthenticationError("No authenticated user")

            payload: dict[str, Any] = {}
            counts: dict[str, int] = {}
            for field, table in LOAD_PLAN.items():
                rows = await self._store.query(table)
                payload[field] = tuple(row_to_entity(table, row) for row in rows)
                counts[table] = len(rows)

            settings_rows = await self._store.query(Tables.SETTINGS)
            counts[Tables.SETTINGS] = len(settings_rows)
            payload["settings"] = (
                row_to_entity(Tables.SETTINGS, settings_rows[0])
                if settings_rows
                else FinancialSettings()
            )
        except StorageError as e:
            logger.error("refresh_failed", error=str(e))
            await self._audit.log_storage_error(
                operation="refresh_data",
                error_message=str(e),
                correlation_id=correlation_id,
            )
            raise
        finally:
            self._container.dispatch(SetLoading(loading=False))

        self._container.dispatch(LoadData(**payload))
        await self._audit.log_data_loaded(counts, correlation_id)
        return self.state

    def set_selected_month(self, month: int, year: int) -> MonthlyFilter:
        selected = MonthlyFilter(month=month, year=year)
        self._container.dispatch(SetSelectedMonth(selected_month=selected))
        return selected

    # =========================================================================
    # REMOTE WRITE HELPERS
    # =========================================================================

    async def _acting_user(self, user_id: Optional[str]) -> Optional[str]:
        if user_id:
            return user_id
        try:
            return await self._store.current_user_id()
        except StorageError as e:
            raise FinanceServiceError(f"Failed to resolve the acting user: {e}") from e

    async def _insert(
        self,
        table: str,
        entity: Any,
        correlation_id: Optional[UUID],
    ) -> Any:
        try:
            row = await self._store.insert(table, entity_to_row(table, entity))
        except StorageError as e:
            await self._write_failed(f"insert into {table}", e, correlation_id)
        return row_to_entity(table, row)

    async def _update(
        self,
        table: str,
        current: Any,
        updates: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> tuple[Any, list[str]]:
        """
        Validate `updates` against the entity, write the changed columns.

        Returns the updated entity and the names of the changed columns.
        """
        try:
            updated = type(current).model_validate({**current.model_dump(), **updates})
        except ValidationError as e:
            raise FinanceServiceError(f"Invalid update for {table}: {e}") from e

        old_row = entity_to_row(table, current)
        new_row = entity_to_row(table, updated)
        patch = {
            column: value for column, value in new_row.items()
            if column != "id" and old_row.get(column) != value
        }
        if not patch:
            return updated, []

        try:
            await self._store.update(table, current.id, patch)
        except StorageError as e:
            await self._write_failed(f"update {table}", e, correlation_id)
        return updated, list(patch)

    async def _write_failed(
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
        raise FinanceServiceError(f"Failed to {operation}: {error}") from error

    async def _create(
        self,
        table: str,
        collection: Collection,
        entity: Any,
        correlation_id: Optional[UUID],
    ) -> Any:
        correlation_id = correlation_id or create_correlation_id()
        stored = await self._insert(table, entity, correlation_id)
        self._container.dispatch(AddEntity(collection=collection, entity=stored))
        await self._audit.log_entity_created(table, stored.id, correlation_id)
        return stored

    async def _modify(
        self,
        table: str,
        collection: Collection,
        current: Any,
        updates: dict[str, Any],
        correlation_id: Optional[UUID],
    ) -> Any:
        correlation_id = correlation_id or create_correlation_id()
        updated, fields = await self._update(table, current, updates, correlation_id)
        if fields:
            self._container.dispatch(UpdateEntity(
                collection=collection,
                entity_id=current.id,
                updates=updated.model_dump(),
            ))
            await self._audit.log_entity_updated(table, current.id, fields, correlation_id)
        return updated

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def add_user(
        self,
        name: str,
        email: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> User:
        return await self._create(
            Tables.USERS, Collection.USERS, User(name=name, email=email), correlation_id
        )

    async def add_expense(
        self,
        description: str,
        amount: Any,
        expense_date: date,
        payment_method: str,
        category: ExpenseCategory = ExpenseCategory.OUTROS,
        installments: int = 1,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> list[Expense]:
        """
        Record a purchase.

        Cash methods (pix, debit, money) create one variable expense.
        Anything else is a credit card name: the purchase is split into
        `installments` card expenses on consecutive months.
        """
        correlation_id = correlation_id or create_correlation_id()
        is_card = payment_method not in CASH_PAYMENT_METHODS
        if is_card and installments < 1:
            raise FinanceServiceError(
                f"Installment count must be at least 1, got {installments}"
            )
        purchase = Expense(
            description=description,
            amount=amount,
            date=expense_date,
            type=ExpenseType.CARTAO_CREDITO if is_card else ExpenseType.VARIAVEL,
            category=category,
            payment_method=payment_method,
            user_id=await self._acting_user(user_id),
        )
        parts = split_installments(purchase, installments if is_card else 1)

        stored: list[Expense] = []
        try:
            for part in parts:
                stored.append(await self._insert(Tables.EXPENSES, part, correlation_id))
        except FinanceServiceError:
            # Don't leave half an installment plan behind
            for expense in stored:
                try:
                    await self._store.delete(Tables.EXPENSES, expense.id)
                except StorageError as e:
                    logger.error("compensation_failed", row_id=expense.id, error=str(e))
            raise

        self._container.dispatch(Batch(actions=tuple(
            AddEntity(collection=Collection.EXPENSES, entity=expense) for expense in stored
        )))
        for expense in stored:
            await self._audit.log_entity_created(Tables.EXPENSES, expense.id, correlation_id)
        return stored

    async def add_fixed_expense(
        self,
        name: str,
        amount: Any,
        due_day: int,
        category: ExpenseCategory = ExpenseCategory.OUTROS,
        credit_card_id: Optional[str] = None,
        effective_from: Optional[date] = None,
        effective_until: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FixedExpense:
        fixed = FixedExpense(
            name=name,
            amount=amount,
            due_day=due_day,
            category=category,
            credit_card_id=credit_card_id,
            effective_from=effective_from or self._clock().date(),
            effective_until=effective_until,
        )
        return await self._create(
            Tables.FIXED_EXPENSES, Collection.FIXED_EXPENSES, fixed, correlation_id
        )

    async def update_fixed_expense(
        self,
        fixed_expense_id: str,
        correlation_id: Optional[UUID] = None,
        **updates: Any,
    ) -> FixedExpense:
        """Edit a fixed expense template (e.g. end it with effective_until)."""
        current = self.state.fixed_expense_by_id(fixed_expense_id)
        if current is None:
            raise FinanceServiceError(f"Fixed expense not found: {fixed_expense_id}")
        return await self._modify(
            Tables.FIXED_EXPENSES, Collection.FIXED_EXPENSES, current, updates, correlation_id
        )

    async def add_fixed_income(
        self,
        description: str,
        amount: Any,
        receive_day: int,
        effective_from: Optional[date] = None,
        effective_until: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> FixedIncome:
        fixed = FixedIncome(
            description=description,
            amount=amount,
            receive_day=receive_day,
            effective_from=effective_from or self._clock().date(),
            effective_until=effective_until,
        )
        return await self._create(
            Tables.FIXED_INCOMES, Collection.FIXED_INCOMES, fixed, correlation_id
        )

    async def update_fixed_income(
        self,
        fixed_income_id: str,
        correlation_id: Optional[UUID] = None,
        **updates: Any,
    ) -> FixedIncome:
        current = self.state.fixed_income_by_id(fixed_income_id)
        if current is None:
            raise FinanceServiceError(f"Fixed income not found: {fixed_income_id}")
        return await self._modify(
            Tables.FIXED_INCOMES, Collection.FIXED_INCOMES, current, updates, correlation_id
        )

    async def add_credit_card(
        self,
        name: str,
        limit: Any,
        closing_day: int,
        due_day: int,
        correlation_id: Optional[UUID] = None,
    ) -> CreditCard:
        if any(card.name == name.strip() for card in self.state.credit_cards):
            raise FinanceServiceError(f"A credit card named {name!r} already exists")
        card = CreditCard(name=name, limit=limit, closing_day=closing_day, due_day=due_day)
        return await self._create(
            Tables.CREDIT_CARDS, Collection.CREDIT_CARDS, card, correlation_id
        )

    async def update_credit_card(
        self,
        credit_card_id: str,
        correlation_id: Optional[UUID] = None,
        **updates: Any,
    ) -> CreditCard:
        """
        Edit a credit card.

        Expenses reference cards by name, so a rename is carried over to
        every expense billed to the card. If any of those writes fails the
        already-written ones are renamed back.
        """
        correlation_id = correlation_id or create_correlation_id()
        current = self.state.credit_card_by_id(credit_card_id)
        if current is None:
            raise FinanceServiceError(f"Credit card not found: {credit_card_id}")
        new_name = updates.get("name")
        if isinstance(new_name, str) and any(
            card.name == new_name.strip() and card.id != current.id
            for card in self.state.credit_cards
        ):
            raise FinanceServiceError(f"A credit card named {new_name!r} already exists")

        updated, fields = await self._update(
            Tables.CREDIT_CARDS, current, updates, correlation_id
        )
        if not fields:
            return updated

        actions = [UpdateEntity(
            collection=Collection.CREDIT_CARDS,
            entity_id=current.id,
            updates=updated.model_dump(),
        )]

        if updated.name != current.name:
            billed = [e for e in self.state.expenses if e.payment_method == current.name]
            renamed: list[Expense] = []
            try:
                for expense in billed:
                    await self._store.update(
                        Tables.EXPENSES, expense.id, {"payment_method": updated.name}
                    )
                    renamed.append(expense)
            except StorageError as e:
                await self._rollback_rename(current, renamed)
                await self._write_failed(f"rename card on {Tables.EXPENSES}", e, correlation_id)
            actions.extend(
                UpdateEntity(
                    collection=Collection.EXPENSES,
                    entity_id=expense.id,
                    updates={"payment_method": updated.name},
                )
                for expense in billed
            )

        self._container.dispatch(Batch(actions=tuple(actions)))
        await self._audit.log_entity_updated(
            Tables.CREDIT_CARDS, current.id, fields, correlation_id
        )
        return updated

    async def _rollback_rename(self, card: CreditCard, renamed: list[Expense]) -> None:
        """Restore the old card name on the card and on already-renamed expenses."""
        try:
            row = entity_to_row(Tables.CREDIT_CARDS, card)
            row.pop("id")
            await self._store.update(Tables.CREDIT_CARDS, card.id, row)
            for expense in renamed:
                await self._store.update(
                    Tables.EXPENSES, expense.id, {"payment_method": card.name}
                )
        except StorageError as e:
            logger.error("compensation_failed", credit_card_id=card.id, error=str(e))

    async def add_cash_movement(
        self,
        movement_type: CashMovementType,
        amount: Any,
        movement_date: date,
        description: str = "",
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> CashMovement:
        movement = CashMovement(
            type=movement_type,
            amount=amount,
            date=movement_date,
            description=description,
            user_id=await self._acting_user(user_id),
        )
        return await self._create(
            Tables.CASH_MOVEMENTS, Collection.CASH_MOVEMENTS, movement, correlation_id
        )

    async def add_investment(
        self,
        description: str,
        amount: Any,
        yield_rate: Any,
        investment_date: date,
        user_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> Investment:
        investment = Investment(
            description=description,
            amount=amount,
            yield_rate=yield_rate,
            date=investment_date,
            user_id=await self._acting_user(user_id),
        )
        return await self._create(
            Tables.INVESTMENTS, Collection.INVESTMENTS, investment, correlation_id
        )

    async def update_settings(
        self,
        correlation_id: Optional[UUID] = None,
        **updates: Any,
    ) -> FinancialSettings:
        """Update the settings singleton, creating its row on first save."""
        correlation_id = correlation_id or create_correlation_id()
        current = self.state.settings

        if current.id is None:
            try:
                candidate = FinancialSettings.model_validate({**current.model_dump(), **updates})
            except ValidationError as e:
                raise FinanceServiceError(f"Invalid settings: {e}") from e
            stored = await self._insert(Tables.SETTINGS, candidate, correlation_id)
            await self._audit.log_entity_created(Tables.SETTINGS, stored.id, correlation_id)
        else:
            stored, fields = await self._update(
                Tables.SETTINGS, current, updates, correlation_id
            )
            if not fields:
                return stored
            await self._audit.log_entity_updated(
                Tables.SETTINGS, current.id, fields, correlation_id
            )

        self._container.dispatch(UpdateSettings(updates=stored.model_dump()))
        return self.state.settings

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    async def toggle_fixed_expense_payment(
        self,
        fixed_expense_id: str,
        month: int,
        year: int,
        amount: Any,
    ) -> ToggleResult:
        return await self._reconciliation.toggle_fixed_expense_payment(
            fixed_expense_id, month, year, amount, correlation_id=create_correlation_id()
        )

    async def toggle_fixed_income_receipt(
        self,
        fixed_income_id: str,
        month: int,
        year: int,
        amount: Any,
    ) -> ToggleResult:
        return await self._reconciliation.toggle_fixed_income_receipt(
            fixed_income_id, month, year, amount, correlation_id=create_correlation_id()
        )

    async def toggle_credit_card_payment(
        self,
        credit_card_id: str,
        month: int,
        year: int,
        amount: Any,
        paid_by: Optional[str] = None,
    ) -> ToggleResult:
        return await self._reconciliation.toggle_credit_card_payment(
            credit_card_id,
            month,
            year,
            amount,
            paid_by=paid_by,
            correlation_id=create_correlation_id(),
        )

    # =========================================================================
    # VIEWS
    # =========================================================================

    def _month(self, month: Optional[int], year: Optional[int]) -> MonthlyFilter:
        selected = self.state.selected_month
        return MonthlyFilter(
            month=selected.month if month is None else month,
            year=selected.year if year is None else year,
        )

    def get_current_balance(self):
        return get_current_balance(self.state)

    def get_total_investments(self):
        return get_total_investments(self.state)

    def get_weighted_average_yield(self):
        return get_weighted_average_yield(self.state)

    def get_dashboard_data(self) -> DashboardData:
        return get_dashboard_data(self.state)

    def get_monthly_data(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> MonthlyData:
        selected = self._month(month, year)
        return get_monthly_data(self.state, selected.month, selected.year)

    def get_active_fixed_expenses(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[ActiveFixedExpense]:
        selected = self._month(month, year)
        return get_active_fixed_expenses(self.state, selected.month, selected.year)

    def get_active_fixed_incomes(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[ActiveFixedIncome]:
        selected = self._month(month, year)
        return get_active_fixed_incomes(self.state, selected.month, selected.year)

    def get_card_bill(
        self,
        credit_card_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> Optional[CardBillSummary]:
        card = self.state.credit_card_by_id(credit_card_id)
        if card is None:
            return None
        selected = self._month(month, year)
        return get_card_bill(self.state, card, selected.month, selected.year)

    def get_cards_overview(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> CardsOverview:
        selected = self._month(month, year)
        return get_cards_overview(self.state, selected.month, selected.year)

    def get_projection(self) -> list[ProjectionPoint]:
        return project_finances(
            self.state,
            months=self._app_settings.projection_months,
            variable_average_months=self._app_settings.variable_average_months,
            today=self._clock().date(),
        )

    def get_period_report(self, filters: ReportFilters) -> PeriodReport:
        return build_period_report(self.state, filters)

    def get_monthly_evolution(self, end: date, months: int = 6) -> list[MonthlyEvolutionPoint]:
        return monthly_evolution(self.state, end, months)


def create_app_components(
    use_supabase: bool = True,
) -> tuple[FinanceService, Optional[SupabaseClient]]:
    """
    Factory function to create all application components.

    Args:
        use_supabase: Whether to connect to Supabase.
                      Set to False for testing without a backend.

    Returns:
        (finance_service, supabase_client)
    """
    app_settings = get_settings().app
    configure_logging(app_settings.log_level, app_settings.log_json)

    client = None
    store: RemoteStoreInterface

    if use_supabase:
        try:
            client = SupabaseClient()
            client.connect()
            store = SupabaseRemoteStore(client)
        except (ConnectionError, ValidationError) as e:
            # Backend not configured - continue with an in-process store
            logger.warning("supabase_not_configured", error=str(e))
            client = None
            store = InMemoryRemoteStore()
    else:
        store = InMemoryRemoteStore()

    audit_logger = AuditLogger(store) if app_settings.audit_persist else AuditLogger()

    service = FinanceService(
        store=store,
        audit_logger=audit_logger,
        app_settings=app_settings,
    )
    return service, client
