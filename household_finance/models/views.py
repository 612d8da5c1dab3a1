"""
Derived View Models

Read-only results computed from a FinanceState snapshot: dashboard
aggregates, monthly partitions, credit card bills, projections and
reports. None of these are persisted; every getter builds them fresh.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from household_finance.models.finance import (
    CashMovement,
    CreditCard,
    Expense,
    ExpenseCategory,
    FixedExpense,
    FixedIncome,
    FixedPayment,
    FixedReceipt,
    Investment,
)


ZERO = Decimal("0.00")


# =============================================================================
# RECURRENCE
# =============================================================================

class ActiveFixedExpense(BaseModel):
    """A fixed expense projected onto one month, with that month's paid state."""
    model_config = ConfigDict(frozen=True)

    fixed_expense: FixedExpense
    is_paid: bool
    paid_at: Optional[datetime] = None
    payment: Optional[FixedPayment] = None

    @property
    def id(self) -> str:
        return self.fixed_expense.id

    @property
    def amount(self) -> Decimal:
        return self.fixed_expense.amount

    @property
    def credit_card_id(self) -> Optional[str]:
        return self.fixed_expense.credit_card_id


class ActiveFixedIncome(BaseModel):
    """A fixed income projected onto one month, with that month's received state."""
    model_config = ConfigDict(frozen=True)

    fixed_income: FixedIncome
    is_received: bool
    received_at: Optional[datetime] = None
    receipt: Optional[FixedReceipt] = None

    @property
    def id(self) -> str:
        return self.fixed_income.id

    @property
    def amount(self) -> Decimal:
        return self.fixed_income.amount


# =============================================================================
# DASHBOARD
# =============================================================================

class PendingCardBill(BaseModel):
    model_config = ConfigDict(frozen=True)

    card: CreditCard
    amount: Decimal


class TopUser(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    user_name: str
    total_amount: Decimal


class DashboardData(BaseModel):
    """Aggregates for the globally selected month."""
    model_config = ConfigDict(frozen=True)

    month: int
    year: int

    expenses_of_month: list[Expense] = Field(default_factory=list)
    total_expenses_of_month: Decimal = ZERO
    generated_expense_ids: frozenset[str] = frozenset()
    variable_expenses: Decimal = ZERO

    active_fixed_expenses: list[ActiveFixedExpense] = Field(default_factory=list)
    active_fixed_incomes: list[ActiveFixedIncome] = Field(default_factory=list)
    total_fixed_expenses_value: Decimal = ZERO
    total_fixed_incomes_value: Decimal = ZERO

    pending_credit_cards: list[PendingCardBill] = Field(default_factory=list)
    pending_fixed_to_pay: Decimal = ZERO
    pending_fixed_to_receive: Decimal = ZERO
    pending_cards_total: Decimal = ZERO

    current_balance: Decimal = ZERO
    total_investments: Decimal = ZERO
    investment_yield: Decimal = ZERO
    projected_balance: Decimal = ZERO

    top_users: list[TopUser] = Field(default_factory=list)


class MonthlyData(BaseModel):
    """Raw partition of one month's records. No settlement logic."""
    model_config = ConfigDict(frozen=True)

    month: int
    year: int
    fixed_expenses: list[ActiveFixedExpense] = Field(default_factory=list)
    variable_expenses: list[Expense] = Field(default_factory=list)
    credit_card_expenses: list[Expense] = Field(default_factory=list)
    cash_movements: list[CashMovement] = Field(default_factory=list)
    investments: list[Investment] = Field(default_factory=list)


# =============================================================================
# CREDIT CARD BILLS
# =============================================================================

class BillLineType(str, Enum):
    """Origin of a line on a card bill extract."""
    VARIABLE = "Variável"
    FIXED_PAID = "Fixo (Pago)"
    FIXED_PROJECTED = "Fixo (Previsto)"


class BillLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    description: str
    amount: Decimal
    type: BillLineType
    expense_id: Optional[str] = None
    fixed_expense_id: Optional[str] = None


class CardBillSummary(BaseModel):
    """One card's bill for a selected month plus its standing commitment."""
    model_config = ConfigDict(frozen=True)

    card: CreditCard
    month: int
    year: int
    current_bill_total: Decimal = ZERO
    pending_total: Decimal = ZERO
    projected_bill_total: Decimal = ZERO
    committed_total: Decimal = ZERO
    available_limit: Decimal = ZERO
    utilization: Decimal = ZERO
    is_paid: bool = False
    extract: list[BillLine] = Field(default_factory=list)


class CardsOverview(BaseModel):
    """Combined utilization across every card."""
    model_config = ConfigDict(frozen=True)

    month: int
    year: int
    cards: list[CardBillSummary] = Field(default_factory=list)
    total_limit: Decimal = ZERO
    total_committed: Decimal = ZERO
    total_current: Decimal = ZERO
    total_projected: Decimal = ZERO
    total_available: Decimal = ZERO
    utilization: Decimal = ZERO


# =============================================================================
# PROJECTION & REPORTS
# =============================================================================

class ProjectionPoint(BaseModel):
    """One month of the forward financial projection."""
    model_config = ConfigDict(frozen=True)

    month: int
    year: int
    cash: Decimal
    invested: Decimal
    balance: Decimal
    income: Decimal
    expenses: Decimal
    yield_amount: Decimal
    is_current: bool = False


class ReportFilters(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    start_date: date
    end_date: date
    category: Optional[ExpenseCategory] = None
    payment_method: Optional[str] = None
    user_id: Optional[str] = None
    description: Optional[str] = None


class BreakdownItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: Decimal


class PeriodReport(BaseModel):
    """Realized totals for a date range."""
    model_config = ConfigDict(frozen=True)

    filters: ReportFilters
    expenses: list[Expense] = Field(default_factory=list)
    total_expenses: Decimal = ZERO
    total_income: Decimal = ZERO
    balance: Decimal = ZERO
    savings_rate: Decimal = ZERO
    by_category: list[BreakdownItem] = Field(default_factory=list)
    by_payment_method: list[BreakdownItem] = Field(default_factory=list)


class MonthlyEvolutionPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    month: int
    year: int
    expenses: Decimal
    income: Decimal
    balance: Decimal
