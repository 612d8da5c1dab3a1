"""
Shared fixtures for the finance engine tests.

No network: every test runs against the in-memory remote store, or a
MagicMock standing in for the Supabase client.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

import pytest

from household_finance.audit import AuditLogger
from household_finance.engine import PaymentReconciliationEngine
from household_finance.models import (
    CreditCard,
    FinancialSettings,
    FixedExpense,
    FixedIncome,
    MonthlyFilter,
)
from household_finance.services.storage import InMemoryRemoteStore, StorageError
from household_finance.state import FinanceState, StateContainer


USER_ID = "user-1"

# 10 May 2024, 12:00 UTC. Month index 4.
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
MAY, YEAR = 4, 2024


class FlakyStore(InMemoryRemoteStore):
    """In-memory store that fails chosen (operation, table) calls."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_on: set[tuple[str, str]] = set()

    def _maybe_fail(self, operation: str, table: str) -> None:
        if (operation, table) in self.fail_on:
            raise StorageError(f"simulated {operation} failure on {table}")

    async def query(self, table, filters=None):
        self._maybe_fail("query", table)
        return await super().query(table, filters)

    async def insert(self, table, row):
        self._maybe_fail("insert", table)
        return await super().insert(table, row)

    async def update(self, table, row_id, patch):
        self._maybe_fail("update", table)
        return await super().update(table, row_id, patch)

    async def delete(self, table, row_id):
        self._maybe_fail("delete", table)
        return await super().delete(table, row_id)


def make_state(
    initial_balance: str = "1000",
    selected: Optional[MonthlyFilter] = None,
    **collections,
) -> FinanceState:
    """Build a snapshot with the given collections (as lists or tuples)."""
    return FinanceState(
        settings=FinancialSettings(initial_balance=Decimal(initial_balance)),
        selected_month=selected or MonthlyFilter(month=MAY, year=YEAR),
        **{name: tuple(items) for name, items in collections.items()},
    )


@pytest.fixture
def store() -> FlakyStore:
    return FlakyStore(user_id=USER_ID)


@pytest.fixture
def card() -> CreditCard:
    return CreditCard(name="Nubank", limit="5000", closing_day=25, due_day=5)


@pytest.fixture
def cash_fixed() -> FixedExpense:
    return FixedExpense(
        name="Internet",
        amount="150",
        due_day=5,
        effective_from=date(2024, 1, 1),
    )


@pytest.fixture
def card_fixed(card) -> FixedExpense:
    return FixedExpense(
        name="Netflix",
        amount="200",
        due_day=5,
        credit_card_id=card.id,
        effective_from=date(2024, 1, 1),
    )


@pytest.fixture
def salary() -> FixedIncome:
    return FixedIncome(
        description="Salary",
        amount="3000",
        receive_day=5,
        effective_from=date(2024, 1, 1),
    )


def make_engine(store, state: FinanceState) -> tuple[PaymentReconciliationEngine, StateContainer]:
    container = StateContainer(state)
    engine = PaymentReconciliationEngine(
        store=store,
        container=container,
        audit_logger=AuditLogger(),
        clock=lambda: NOW,
    )
    return engine, container
