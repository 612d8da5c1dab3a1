"""
State Container

DESIGN DECISION: All loaded entities live in ONE immutable snapshot
(FinanceState). The only way to change it is to dispatch one of a closed
set of actions to the StateContainer that owns it.

This gives us:
1. A single source of truth for every calculator
2. Explicit, auditable transitions
3. Readers that can never observe a half-applied change, because each
   dispatch swaps in a complete new snapshot

Entities are frozen pydantic models held in tuples, so a snapshot handed
to a reader can be kept and inspected without copying.
"""

from datetime import date
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from household_finance.models.finance import (
    CashMovement,
    CreditCard,
    CreditCardPayment,
    Expense,
    FinancialSettings,
    FixedExpense,
    FixedIncome,
    FixedPayment,
    FixedReceipt,
    Investment,
    MonthlyFilter,
    User,
)


class Collection(str, Enum):
    """Entity collections held by FinanceState (values are attribute names)."""
    USERS = "users"
    EXPENSES = "expenses"
    FIXED_EXPENSES = "fixed_expenses"
    FIXED_INCOMES = "fixed_incomes"
    CREDIT_CARDS = "credit_cards"
    CASH_MOVEMENTS = "cash_movements"
    INVESTMENTS = "investments"
    FIXED_PAYMENTS = "fixed_payments"
    FIXED_RECEIPTS = "fixed_receipts"
    CREDIT_CARD_PAYMENTS = "credit_card_payments"


COLLECTION_TYPES: dict[Collection, type] = {
    Collection.USERS: User,
    Collection.EXPENSES: Expense,
    Collection.FIXED_EXPENSES: FixedExpense,
    Collection.FIXED_INCOMES: FixedIncome,
    Collection.CREDIT_CARDS: CreditCard,
    Collection.CASH_MOVEMENTS: CashMovement,
    Collection.INVESTMENTS: Investment,
    Collection.FIXED_PAYMENTS: FixedPayment,
    Collection.FIXED_RECEIPTS: FixedReceipt,
    Collection.CREDIT_CARD_PAYMENTS: CreditCardPayment,
}


def _current_month() -> MonthlyFilter:
    return MonthlyFilter.for_date(date.today())


class FinanceState(BaseModel):
    """Immutable snapshot of everything the engine knows."""
    model_config = ConfigDict(frozen=True)

    users: tuple[User, ...] = ()
    expenses: tuple[Expense, ...] = ()
    fixed_expenses: tuple[FixedExpense, ...] = ()
    fixed_incomes: tuple[FixedIncome, ...] = ()
    credit_cards: tuple[CreditCard, ...] = ()
    cash_movements: tuple[CashMovement, ...] = ()
    investments: tuple[Investment, ...] = ()
    fixed_payments: tuple[FixedPayment, ...] = ()
    fixed_receipts: tuple[FixedReceipt, ...] = ()
    credit_card_payments: tuple[CreditCardPayment, ...] = ()
    settings: FinancialSettings = Field(default_factory=FinancialSettings)

    selected_month: MonthlyFilter = Field(default_factory=_current_month)
    loading: bool = False

    # Bumped on every transition; a cheap key for memoizing derived views
    version: int = 0

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def fixed_expense_by_id(self, fixed_expense_id: str) -> Optional[FixedExpense]:
        return next((f for f in self.fixed_expenses if f.id == fixed_expense_id), None)

    def fixed_income_by_id(self, fixed_income_id: str) -> Optional[FixedIncome]:
        return next((f for f in self.fixed_incomes if f.id == fixed_income_id), None)

    def credit_card_by_id(self, card_id: str) -> Optional[CreditCard]:
        return next((c for c in self.credit_cards if c.id == card_id), None)

    def expense_by_id(self, expense_id: str) -> Optional[Expense]:
        return next((e for e in self.expenses if e.id == expense_id), None)

    def user_name(self, user_id: Optional[str]) -> str:
        user = next((u for u in self.users if u.id == user_id), None)
        return user.name if user else "N/A"

    def find_fixed_payment(
        self, fixed_expense_id: str, month: int, year: int
    ) -> Optional[FixedPayment]:
        return next(
            (
                p for p in self.fixed_payments
                if p.fixed_expense_id == fixed_expense_id
                and p.month == month
                and p.year == year
            ),
            None,
        )

    def find_fixed_receipt(
        self, fixed_income_id: str, month: int, year: int
    ) -> Optional[FixedReceipt]:
        return next(
            (
                r for r in self.fixed_receipts
                if r.fixed_income_id == fixed_income_id
                and r.month == month
                and r.year == year
            ),
            None,
        )

    def find_credit_card_payment(
        self, card_id: str, month: int, year: int
    ) -> Optional[CreditCardPayment]:
        return next(
            (
                p for p in self.credit_card_payments
                if p.credit_card_id == card_id
                and p.month == month
                and p.year == year
            ),
            None,
        )

    def generated_expense_ids(self) -> frozenset[str]:
        """Ids of expenses created by settling card-linked fixed expenses."""
        return frozenset(
            p.generated_expense_id
            for p in self.fixed_payments
            if p.generated_expense_id
        )


# =============================================================================
# ACTIONS - the closed set of transitions
# =============================================================================

class _Action(BaseModel):
    model_config = ConfigDict(frozen=True)


class LoadData(_Action):
    """Replace every entity collection wholesale (after a refresh)."""
    users: tuple[User, ...] = ()
    expenses: tuple[Expense, ...] = ()
    fixed_expenses: tuple[FixedExpense, ...] = ()
    fixed_incomes: tuple[FixedIncome, ...] = ()
    credit_cards: tuple[CreditCard, ...] = ()
    cash_movements: tuple[CashMovement, ...] = ()
    investments: tuple[Investment, ...] = ()
    fixed_payments: tuple[FixedPayment, ...] = ()
    fixed_receipts: tuple[FixedReceipt, ...] = ()
    credit_card_payments: tuple[CreditCardPayment, ...] = ()
    settings: FinancialSettings = Field(default_factory=FinancialSettings)


class SetLoading(_Action):
    loading: bool


class SetSelectedMonth(_Action):
    selected_month: MonthlyFilter


class AddEntity(_Action):
    collection: Collection
    entity: Any


class UpdateEntity(_Action):
    collection: Collection
    entity_id: str
    updates: dict[str, Any]


class RemoveEntity(_Action):
    collection: Collection
    entity_id: str


class ReplaceEntities(_Action):
    """Replace the entities of a collection matching `match` with `entities`."""
    collection: Collection
    match: dict[str, Any]
    entities: tuple[Any, ...] = ()


class UpdateSettings(_Action):
    updates: dict[str, Any]


class Batch(_Action):
    """Apply several actions as one transition."""
    actions: tuple[Any, ...]


Action = Union[
    LoadData,
    SetLoading,
    SetSelectedMonth,
    AddEntity,
    UpdateEntity,
    RemoveEntity,
    ReplaceEntities,
    UpdateSettings,
    Batch,
]


def _check_type(collection: Collection, entity: Any) -> None:
    expected = COLLECTION_TYPES[collection]
    if not isinstance(entity, expected):
        raise TypeError(
            f"{collection.value} holds {expected.__name__}, got {type(entity).__name__}"
        )


def _apply(state: FinanceState, action: Action) -> FinanceState:
    """Apply one action without bumping the version."""
    if isinstance(action, LoadData):
        payload = {name: getattr(action, name) for name in LoadData.model_fields}
        return state.model_copy(update=payload)

    elif isinstance(action, SetLoading):
        return state.model_copy(update={"loading": action.loading})

    elif isinstance(action, SetSelectedMonth):
        return state.model_copy(update={"selected_month": action.selected_month})

    elif isinstance(action, AddEntity):
        _check_type(action.collection, action.entity)
        items = getattr(state, action.collection.value)
        return state.model_copy(
            update={action.collection.value: items + (action.entity,)}
        )

    elif isinstance(action, UpdateEntity):
        items = getattr(state, action.collection.value)
        updated = tuple(
            type(item).model_validate({**item.model_dump(), **action.updates})
            if item.id == action.entity_id
            else item
            for item in items
        )
        return state.model_copy(update={action.collection.value: updated})

    elif isinstance(action, RemoveEntity):
        items = getattr(state, action.collection.value)
        return state.model_copy(
            update={
                action.collection.value: tuple(
                    item for item in items if item.id != action.entity_id
                )
            }
        )

    elif isinstance(action, ReplaceEntities):
        for entity in action.entities:
            _check_type(action.collection, entity)
        items = getattr(state, action.collection.value)
        kept = tuple(
            item for item in items
            if not all(getattr(item, k) == v for k, v in action.match.items())
        )
        return state.model_copy(
            update={action.collection.value: kept + tuple(action.entities)}
        )

    elif isinstance(action, UpdateSettings):
        settings = FinancialSettings.model_validate(
            {**state.settings.model_dump(), **action.updates}
        )
        return state.model_copy(update={"settings": settings})

    elif isinstance(action, Batch):
        for inner in action.actions:
            state = _apply(state, inner)
        return state

    raise TypeError(f"Unknown action: {type(action).__name__}")


def reduce(state: FinanceState, action: Action) -> FinanceState:
    """Pure transition: the snapshot that results from applying `action`."""
    new_state = _apply(state, action)
    return new_state.model_copy(update={"version": state.version + 1})


class StateContainer:
    """
    Owner of the current FinanceState.

    Mutated only through dispatch(); readers get the immutable snapshot.
    """

    def __init__(self, initial: Optional[FinanceState] = None):
        self._state = initial or FinanceState()

    @property
    def state(self) -> FinanceState:
        return self._state

    def dispatch(self, action: Action) -> FinanceState:
        self._state = reduce(self._state, action)
        return self._state
