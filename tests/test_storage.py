"""
Tests for the storage layer

Covers the row/entity mapping, the in-memory store and the Supabase
store (with a mocked client; no network).
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest
from postgrest.exceptions import APIError

from household_finance.config import SupabaseSettings
from household_finance.models import (
    Expense,
    ExpenseType,
    FinancialSettings,
    FixedPayment,
    Installments,
)
from household_finance.services.storage import (
    AuthenticationError,
    DuplicateError,
    InMemoryRemoteStore,
    NotFoundError,
    StorageError,
    SupabaseClient,
    SupabaseRemoteStore,
    Tables,
)
from household_finance.services.storage.mapping import (
    entity_to_row,
    parse_date,
    parse_timestamp,
    row_to_entity,
    row_to_expense,
    row_to_fixed_expense,
    row_to_fixed_payment,
    row_to_settings,
)


# =============================================================================
# MAPPING
# =============================================================================

class TestScalarParsing:
    """Tests for date and timestamp columns."""

    def test_date_ignores_time_and_zone(self):
        """Test that a date-only column never shifts to a neighbouring day."""
        assert parse_date("2024-05-31T23:30:00-03:00") == date(2024, 5, 31)
        assert parse_date("2024-05-31") == date(2024, 5, 31)

    def test_empty_values(self):
        assert parse_date(None) is None
        assert parse_date("") is None
        assert parse_timestamp("") is None

    def test_timestamp_is_utc(self):
        """Test that timestamps come back aware and in UTC."""
        parsed = parse_timestamp("2024-05-10T09:00:00-03:00")

        assert parsed == datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
        assert parsed.utcoffset() == timedelta(0)

    def test_zulu_and_naive_timestamps(self):
        assert parse_timestamp("2024-05-10T12:00:00Z").tzinfo is not None
        assert parse_timestamp("2024-05-10T12:00:00") == datetime(
            2024, 5, 10, 12, 0, tzinfo=timezone.utc
        )


class TestEntityMapping:
    """Tests for row <-> entity conversion."""

    def test_expense_row(self):
        """Test a stored expense row with numeric and string columns."""
        expense = row_to_expense({
            "id": 7,
            "description": "TV (2/10)",
            "amount": 199.9,
            "date": "2024-03-01",
            "type": "cartao_credito",
            "category": "lazer",
            "payment_method": "Visa",
            "user_id": None,
            "installments_current": 2,
            "installments_total": 10,
            "created_at": "2024-03-01T10:00:00+00:00",
        })

        assert expense.id == "7"
        assert expense.amount == Decimal("199.90")
        assert expense.type == ExpenseType.CARTAO_CREDITO
        assert expense.installments == Installments(current=2, total=10)
        assert expense.is_cash is False

    def test_expense_defaults(self):
        """Test that missing optional columns fall back to defaults."""
        expense = row_to_expense({
            "id": "e1", "amount": "10", "date": "2024-03-01", "payment_method": "pix",
        })

        assert expense.type == ExpenseType.VARIAVEL
        assert expense.installments.total == 1
        assert expense.description == ""

    def test_fixed_expense_without_window_starts_at_creation(self):
        """Test legacy rows that predate validity windows."""
        fixed = row_to_fixed_expense({
            "id": "f1", "name": "Rent", "amount": "900", "due_day": 5,
            "created_at": "2023-08-14T10:00:00+00:00",
        })

        assert fixed.effective_from == date(2023, 8, 14)
        assert fixed.effective_until is None

    def test_payment_paid_at_falls_back_to_created_at(self):
        payment = row_to_fixed_payment({
            "id": "p1", "fixed_expense_id": "f1", "month": 4, "year": 2024,
            "amount": "150", "created_at": "2024-05-10T12:00:00+00:00",
        })

        assert payment.paid_at == datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

    def test_settings_missing_columns_are_zero(self):
        settings = row_to_settings({"id": "s1"})

        assert settings.initial_balance == Decimal("0.00")
        assert settings.monthly_yield == Decimal("0")

    def test_rows_carry_strings_for_money(self):
        """Test that money leaves as exact strings and nested values are flattened."""
        expense = Expense(
            amount="33.34", date=date(2024, 1, 31), type=ExpenseType.CARTAO_CREDITO,
            payment_method="Visa", installments=Installments(current=1, total=3),
        )

        row = entity_to_row(Tables.EXPENSES, expense)

        assert row["amount"] == "33.34"
        assert row["date"] == "2024-01-31"
        assert row["installments_current"] == 1
        assert row["installments_total"] == 3
        assert row_to_entity(Tables.EXPENSES, row) == expense

    def test_settings_row_without_id(self):
        """Test that a settings row gets no id until the store assigns one."""
        row = entity_to_row(Tables.SETTINGS, FinancialSettings(initial_balance="10"))

        assert "id" not in row
        assert row["initial_balance"] == "10.00"


# =============================================================================
# IN-MEMORY STORE
# =============================================================================

class TestInMemoryRemoteStore:
    """Tests for the dict-backed store."""

    @pytest.mark.asyncio
    async def test_insert_assigns_id_and_timestamp(self):
        store = InMemoryRemoteStore()

        row = await store.insert(Tables.USERS, {"name": "Ana"})

        assert row["id"]
        assert row["created_at"]
        assert await store.query(Tables.USERS) == [row]

    @pytest.mark.asyncio
    async def test_query_filters(self):
        store = InMemoryRemoteStore(tables={Tables.EXPENSES: [
            {"id": "a", "payment_method": "Visa"},
            {"id": "b", "payment_method": "pix"},
        ]})

        rows = await store.query(Tables.EXPENSES, {"payment_method": "Visa"})

        assert [r["id"] for r in rows] == ["a"]

    @pytest.mark.asyncio
    async def test_rows_are_copies(self):
        """Test that callers cannot mutate stored rows."""
        store = InMemoryRemoteStore()
        row = await store.insert(Tables.USERS, {"name": "Ana"})

        row["name"] = "Changed"
        (await store.query(Tables.USERS))[0]["name"] = "Changed"

        assert store.rows(Tables.USERS)[0]["name"] == "Ana"

    @pytest.mark.asyncio
    async def test_settlement_key_is_unique(self):
        """Test the (item, month, year) guard on settlement tables."""
        store = InMemoryRemoteStore()
        payment = FixedPayment(fixed_expense_id="f1", month=4, year=2024, amount="10")
        await store.insert(Tables.FIXED_EXPENSE_PAYMENTS, entity_to_row(
            Tables.FIXED_EXPENSE_PAYMENTS, payment
        ))
        second = FixedPayment(fixed_expense_id="f1", month=4, year=2024, amount="10")

        with pytest.raises(DuplicateError):
            await store.insert(Tables.FIXED_EXPENSE_PAYMENTS, entity_to_row(
                Tables.FIXED_EXPENSE_PAYMENTS, second
            ))

        other_month = FixedPayment(fixed_expense_id="f1", month=5, year=2024, amount="10")
        await store.insert(Tables.FIXED_EXPENSE_PAYMENTS, entity_to_row(
            Tables.FIXED_EXPENSE_PAYMENTS, other_month
        ))
        assert len(store.rows(Tables.FIXED_EXPENSE_PAYMENTS)) == 2

    @pytest.mark.asyncio
    async def test_duplicate_id(self):
        store = InMemoryRemoteStore()
        await store.insert(Tables.USERS, {"id": "u1", "name": "Ana"})

        with pytest.raises(DuplicateError):
            await store.insert(Tables.USERS, {"id": "u1", "name": "Ana"})

    @pytest.mark.asyncio
    async def test_update_and_delete(self):
        store = InMemoryRemoteStore(tables={Tables.USERS: [{"id": "u1", "name": "Ana"}]})

        await store.update(Tables.USERS, "u1", {"name": "Ana Maria"})
        assert store.rows(Tables.USERS)[0]["name"] == "Ana Maria"

        with pytest.raises(NotFoundError):
            await store.update(Tables.USERS, "ghost", {"name": "x"})

        await store.delete(Tables.USERS, "u1")
        await store.delete(Tables.USERS, "u1")
        assert store.rows(Tables.USERS) == []

    @pytest.mark.asyncio
    async def test_session(self):
        store = InMemoryRemoteStore()
        assert await store.current_user_id() is None

        store.sign_in("u1")
        assert await store.current_user_id() == "u1"


# =============================================================================
# SUPABASE STORE
# =============================================================================

@pytest.fixture
def client():
    """A SupabaseClient wrapper whose table() returns a MagicMock builder."""
    client = MagicMock(spec=SupabaseClient)
    return client


def builder(client):
    return client.table.return_value


class TestSupabaseRemoteStore:
    """Tests for the Supabase store with a mocked client."""

    @pytest.mark.asyncio
    async def test_query_applies_filters(self, client):
        request = builder(client).select.return_value
        request.eq.return_value = request
        request.execute.return_value = MagicMock(data=[{"id": "p1"}])
        store = SupabaseRemoteStore(client)

        rows = await store.query(Tables.FIXED_EXPENSE_PAYMENTS, {"month": 4, "year": 2024})

        assert rows == [{"id": "p1"}]
        client.table.assert_called_with(Tables.FIXED_EXPENSE_PAYMENTS)
        builder(client).select.assert_called_once_with("*")
        assert request.eq.call_count == 2

    @pytest.mark.asyncio
    async def test_insert_returns_row(self, client):
        builder(client).insert.return_value.execute.return_value = MagicMock(
            data=[{"id": "e1", "created_at": "2024-05-10T12:00:00+00:00"}]
        )
        store = SupabaseRemoteStore(client)

        row = await store.insert(Tables.EXPENSES, {"id": "e1"})

        assert row["created_at"]

    @pytest.mark.asyncio
    async def test_unique_violation_is_duplicate(self, client):
        """Test that Postgres code 23505 maps to DuplicateError."""
        builder(client).insert.return_value.execute.side_effect = APIError({
            "code": "23505",
            "message": "duplicate key value violates unique constraint",
            "details": None,
            "hint": None,
        })
        store = SupabaseRemoteStore(client)

        with pytest.raises(DuplicateError):
            await store.insert(Tables.FIXED_EXPENSE_PAYMENTS, {"id": "p1"})

    @pytest.mark.asyncio
    async def test_other_errors_are_storage_errors(self, client):
        builder(client).delete.return_value.eq.return_value.execute.side_effect = RuntimeError(
            "timeout"
        )
        store = SupabaseRemoteStore(client)

        with pytest.raises(StorageError) as excinfo:
            await store.delete(Tables.EXPENSES, "e1")

        assert not isinstance(excinfo.value, DuplicateError)

    @pytest.mark.asyncio
    async def test_update_of_missing_row(self, client):
        """Test that an update touching no row raises NotFoundError."""
        (
            builder(client).update.return_value.eq.return_value.execute.return_value
        ) = MagicMock(data=[])
        store = SupabaseRemoteStore(client)

        with pytest.raises(NotFoundError):
            await store.update(Tables.CREDIT_CARDS, "c1", {"name": "Visa"})

    @pytest.mark.asyncio
    async def test_empty_insert_response(self, client):
        builder(client).insert.return_value.execute.return_value = MagicMock(data=[])
        store = SupabaseRemoteStore(client)

        with pytest.raises(StorageError):
            await store.insert(Tables.EXPENSES, {"id": "e1"})

    @pytest.mark.asyncio
    async def test_current_user(self, client):
        client.user_id.return_value = "u1"

        assert await SupabaseRemoteStore(client).current_user_id() == "u1"


class TestSupabaseClient:
    """Tests for the client wrapper's auth helpers."""

    @pytest.fixture
    def settings(self):
        return SupabaseSettings(url="https://example.supabase.co/", key="anon")

    def test_connect_once(self, settings):
        with patch(
            "household_finance.services.storage.supabase_store.create_client"
        ) as create:
            client = SupabaseClient(settings)
            client.connect()
            client.connect()

        create.assert_called_once_with("https://example.supabase.co", "anon")

    def test_no_session_is_none(self, settings):
        with patch(
            "household_finance.services.storage.supabase_store.create_client"
        ) as create:
            create.return_value.auth.get_user.return_value = None

            assert SupabaseClient(settings).user_id() is None

    def test_user_lookup_failure(self, settings):
        with patch(
            "household_finance.services.storage.supabase_store.create_client"
        ) as create:
            create.return_value.auth.get_user.side_effect = RuntimeError("expired")

            with pytest.raises(AuthenticationError):
                SupabaseClient(settings).user_id()
