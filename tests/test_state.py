"""
Tests for the State Container
"""

from datetime import date

import pytest
from pydantic import ValidationError

from conftest import make_state
from household_finance.models import (
    CreditCard,
    Expense,
    FixedPayment,
    MonthlyFilter,
    User,
)
from household_finance.state import (
    AddEntity,
    Batch,
    Collection,
    FinanceState,
    LoadData,
    RemoveEntity,
    ReplaceEntities,
    SetLoading,
    SetSelectedMonth,
    StateContainer,
    UpdateEntity,
    UpdateSettings,
    reduce,
)


@pytest.fixture
def expense():
    return Expense(amount="10", date=date(2024, 5, 1), payment_method="pix")


class TestTransitions:
    """Tests for each action type."""

    def test_add_entity_bumps_version(self, expense):
        """Test that every dispatch produces a new snapshot and version."""
        container = StateContainer(make_state())
        before = container.state

        after = container.dispatch(AddEntity(collection=Collection.EXPENSES, entity=expense))

        assert after.version == before.version + 1
        assert after.expenses == (expense,)
        # The previous snapshot is untouched
        assert before.expenses == ()

    def test_update_entity_revalidates(self, expense):
        """Test that updates go through the model validators."""
        state = make_state(expenses=[expense])

        updated = reduce(state, UpdateEntity(
            collection=Collection.EXPENSES,
            entity_id=expense.id,
            updates={"amount": "12.345"},
        ))

        assert str(updated.expenses[0].amount) == "12.35"
        assert updated.expenses[0].id == expense.id

    def test_remove_entity(self, expense):
        """Test removing by id."""
        state = make_state(expenses=[expense])

        assert reduce(state, RemoveEntity(
            collection=Collection.EXPENSES, entity_id=expense.id
        )).expenses == ()

    def test_remove_unknown_id_is_noop(self, expense):
        """Test that removing a missing id leaves the collection as is."""
        state = make_state(expenses=[expense])

        result = reduce(state, RemoveEntity(collection=Collection.EXPENSES, entity_id="nope"))

        assert result.expenses == (expense,)
        assert result.version == state.version + 1

    def test_replace_entities_by_key(self):
        """Test that ReplaceEntities swaps every row matching the key."""
        ours = FixedPayment(fixed_expense_id="fx", month=4, year=2024, amount="10")
        other = FixedPayment(fixed_expense_id="fx", month=5, year=2024, amount="10")
        winner = FixedPayment(fixed_expense_id="fx", month=4, year=2024, amount="10")
        state = make_state(fixed_payments=[ours, other])

        result = reduce(state, ReplaceEntities(
            collection=Collection.FIXED_PAYMENTS,
            match={"fixed_expense_id": "fx", "month": 4, "year": 2024},
            entities=(winner,),
        ))

        assert {p.id for p in result.fixed_payments} == {other.id, winner.id}

    def test_load_data_replaces_everything(self, expense):
        """Test that LoadData swaps collections wholesale."""
        state = make_state(expenses=[expense])
        user = User(name="Ana")

        result = reduce(state, LoadData(users=(user,)))

        assert result.users == (user,)
        assert result.expenses == ()

    def test_loading_and_selected_month(self):
        """Test the flag and selection transitions."""
        state = make_state()

        state = reduce(state, SetLoading(loading=True))
        state = reduce(state, SetSelectedMonth(selected_month=MonthlyFilter(month=0, year=2025)))

        assert state.loading is True
        assert state.selected_month == MonthlyFilter(month=0, year=2025)

    def test_update_settings_merges(self):
        """Test that settings updates keep untouched fields."""
        state = make_state(initial_balance="250")

        result = reduce(state, UpdateSettings(updates={"monthly_yield": "0.9"}))

        assert str(result.settings.initial_balance) == "250.00"
        assert str(result.settings.monthly_yield) == "0.9"


class TestBatch:
    """Tests for applying several actions as one transition."""

    def test_batch_is_one_version(self, expense):
        """Test that a batch bumps the version once."""
        payment = FixedPayment(
            fixed_expense_id="fx", month=4, year=2024, amount="10",
            generated_expense_id=expense.id,
        )
        state = make_state()

        result = reduce(state, Batch(actions=(
            AddEntity(collection=Collection.EXPENSES, entity=expense),
            AddEntity(collection=Collection.FIXED_PAYMENTS, entity=payment),
        )))

        assert result.version == state.version + 1
        assert result.generated_expense_ids() == frozenset({expense.id})

    def test_failed_batch_keeps_state(self, expense):
        """Test that a batch failing midway leaves the container unchanged."""
        container = StateContainer(make_state())
        before = container.state

        with pytest.raises(TypeError):
            container.dispatch(Batch(actions=(
                AddEntity(collection=Collection.EXPENSES, entity=expense),
                AddEntity(collection=Collection.CREDIT_CARDS, entity=expense),
            )))

        assert container.state is before


class TestGuards:
    """Tests for rejected transitions and immutability."""

    def test_wrong_entity_type(self, expense):
        """Test that an entity must match its collection."""
        with pytest.raises(TypeError):
            reduce(make_state(), AddEntity(collection=Collection.USERS, entity=expense))

    def test_unknown_action(self):
        """Test that anything outside the closed set is rejected."""
        with pytest.raises(TypeError):
            reduce(make_state(), object())

    def test_snapshot_is_frozen(self):
        """Test that a snapshot cannot be mutated in place."""
        state = make_state()

        with pytest.raises(ValidationError):
            state.loading = True

    def test_entities_are_frozen(self):
        """Test that entities inside a snapshot cannot be mutated."""
        card = CreditCard(name="Visa", limit="100", closing_day=1, due_day=10)

        with pytest.raises(ValidationError):
            card.name = "Master"


class TestLookups:
    """Tests for the snapshot lookup helpers."""

    def test_user_name_fallback(self):
        """Test that unknown users display as N/A."""
        state = make_state(users=[User(id="u1", name="Ana")])

        assert state.user_name("u1") == "Ana"
        assert state.user_name("ghost") == "N/A"
        assert state.user_name(None) == "N/A"

    def test_default_state_is_empty(self):
        """Test the initial snapshot."""
        state = FinanceState()

        assert state.version == 0
        assert state.expenses == ()
        assert state.settings.initial_balance == 0
