"""
Core Data Models for the Household Finance Engine

These models define the strict schemas for every entity the engine keeps
in memory. They are designed to:
1. Enforce type safety at runtime
2. Keep money exact (Decimal, quantized to cents - never float)
3. Be immutable once loaded, so snapshots can be shared freely
4. Mirror the rows of the hosted data store one-to-one

DESIGN DECISION: Fixed expenses and fixed incomes are recurring TEMPLATES.
Whether a template was settled in a given month lives in FixedPayment /
FixedReceipt rows, never on the template itself.

Months are 0-11 throughout, matching the persisted rows.
"""

from calendar import monthrange
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    model_validator,
)


CENTS = Decimal("0.01")


def to_decimal(value: Any) -> Decimal:
    """Convert a raw value (str, int, float, Decimal) to Decimal without float drift."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    if isinstance(value, float):
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, TypeError):
        raise ValueError(f"Invalid decimal value: {value!r}")


def to_money(value: Any) -> Decimal:
    """Convert a raw value to a Decimal amount quantized to cents."""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


Money = Annotated[Decimal, BeforeValidator(to_money)]
Rate = Annotated[Decimal, BeforeValidator(to_decimal)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Client-side row id. The store accepts caller-provided UUIDs."""
    return str(uuid4())


def last_day_of_month(month: int, year: int) -> int:
    """Last calendar day of a 0-11 month."""
    return monthrange(year, month + 1)[1]


def clamp_day(day: int, month: int, year: int) -> date:
    """Build a date in a 0-11 month, clamping the day to the month's length."""
    return date(year, month + 1, min(day, last_day_of_month(month, year)))


def shift_month(month: int, year: int, offset: int) -> tuple[int, int]:
    """Move a (0-11 month, year) pair by `offset` months."""
    total = year * 12 + month + offset
    return total % 12, total // 12


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class ExpenseType(str, Enum):
    """How an expense is settled."""
    VARIAVEL = "variavel"              # Paid straight from cash (pix, debit, money)
    CARTAO_CREDITO = "cartao_credito"  # Billed to a credit card
    FIXO = "fixo"                      # Legacy rows recorded as fixed


class ExpenseCategory(str, Enum):
    """Expense categories used across the household."""
    ALIMENTACAO = "alimentacao"
    TRANSPORTE = "transporte"
    LAZER = "lazer"
    SAUDE = "saude"
    EDUCACAO = "educacao"
    MORADIA = "moradia"
    VESTUARIO = "vestuario"
    OUTROS = "outros"


class PaymentMethod(str, Enum):
    """
    Cash-settling payment methods.

    Any other payment_method value on an Expense is a credit card NAME.
    """
    DINHEIRO = "dinheiro"
    DEBITO = "debito"
    PIX = "pix"


CASH_PAYMENT_METHODS = frozenset(method.value for method in PaymentMethod)


class CashMovementType(str, Enum):
    INCOME = "income"
    OUTCOME = "outcome"


# =============================================================================
# PEOPLE & SETTINGS
# =============================================================================

class User(BaseModel):
    """A member of the shared wallet."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    email: Optional[str] = None
    created_at: Optional[datetime] = None


class FinancialSettings(BaseModel):
    """
    Initial conditions for balance and projection math.

    Singleton per account. A missing row behaves as all zeros.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    monthly_yield: Rate = Field(
        default=Decimal("0"),
        description="Expected monthly yield of invested money, in percent"
    )
    initial_balance: Money = Field(
        default=Decimal("0.00"),
        description="Cash balance before any recorded movement"
    )
    initial_investment: Money = Field(
        default=Decimal("0.00"),
        ge=0,
        description="Invested amount before any recorded investment"
    )


class MonthlyFilter(BaseModel):
    """The month/year every 'active this month' view is computed for."""
    model_config = ConfigDict(frozen=True)

    month: int = Field(..., ge=0, le=11, description="Month, 0-11")
    year: int = Field(..., ge=1900, le=9999)

    @classmethod
    def for_date(cls, day: date) -> "MonthlyFilter":
        return cls(month=day.month - 1, year=day.year)

    def previous(self) -> "MonthlyFilter":
        month, year = shift_month(self.month, self.year, -1)
        return MonthlyFilter(month=month, year=year)

    def contains(self, day: date) -> bool:
        """Check whether a calendar date falls inside this month."""
        return day.month - 1 == self.month and day.year == self.year


# =============================================================================
# VARIABLE SPENDING
# =============================================================================

class Installments(BaseModel):
    """Position of an expense inside an installment plan."""
    model_config = ConfigDict(frozen=True)

    current: int = Field(default=1, ge=1)
    total: int = Field(default=1, ge=1, le=360)

    @model_validator(mode='after')
    def validate_position(self) -> 'Installments':
        if self.current > self.total:
            raise ValueError("Current installment cannot exceed total installments")
        return self


class Expense(BaseModel):
    """
    A single (non-recurring) expense.

    When type is CARTAO_CREDITO, payment_method holds the credit card NAME.
    Rows generated by settling a card-linked fixed expense are ordinary
    Expense rows; they are recognised through FixedPayment.generated_expense_id.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    description: str = Field(default="", max_length=500)
    amount: Money = Field(..., ge=0)
    date: date
    type: ExpenseType = ExpenseType.VARIAVEL
    category: ExpenseCategory = ExpenseCategory.OUTROS
    payment_method: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    installments: Installments = Field(default_factory=Installments)
    created_at: Optional[datetime] = None

    @property
    def is_cash(self) -> bool:
        """Whether this expense leaves the cash balance immediately."""
        return self.payment_method in CASH_PAYMENT_METHODS


class CashMovement(BaseModel):
    """An ad-hoc cash entry or withdrawal."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    type: CashMovementType
    description: str = Field(default="", max_length=500)
    amount: Money = Field(..., ge=0)
    user_id: Optional[str] = None
    date: date
    created_at: Optional[datetime] = None


class Investment(BaseModel):
    """An investment contribution and its expected monthly yield."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    description: str = Field(default="", max_length=500)
    amount: Money = Field(..., ge=0)
    yield_rate: Rate = Field(
        default=Decimal("0"),
        description="Monthly yield in percent"
    )
    date: date
    user_id: Optional[str] = None
    created_at: Optional[datetime] = None


# =============================================================================
# RECURRING TEMPLATES
# =============================================================================

class _Recurring(BaseModel):
    """Shared validity window of fixed expenses and fixed incomes."""
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    effective_from: date
    effective_until: Optional[date] = None

    @model_validator(mode='after')
    def validate_window(self):
        if self.effective_until and self.effective_until < self.effective_from:
            raise ValueError("Effective until cannot be before effective from")
        return self


class FixedExpense(_Recurring):
    """
    A recurring obligation template (rent, internet, school...).

    is_paid is a legacy default carried by old rows; the paid state of a
    month lives in FixedPayment.
    """

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=200)
    category: ExpenseCategory = ExpenseCategory.OUTROS
    amount: Money = Field(..., ge=0)
    due_day: int = Field(..., ge=1, le=31)
    credit_card_id: Optional[str] = None
    is_paid: bool = False
    created_at: Optional[datetime] = None


class FixedIncome(_Recurring):
    """A recurring income template (salary, rent received...)."""

    id: str = Field(default_factory=new_id)
    description: str = Field(..., min_length=1, max_length=200)
    amount: Money = Field(..., ge=0)
    receive_day: int = Field(..., ge=1, le=31)
    created_at: Optional[datetime] = None


# =============================================================================
# SETTLEMENT RECORDS
# =============================================================================

class FixedPayment(BaseModel):
    """
    "This fixed expense was settled for month/year."

    CRITICAL: at most one row per (fixed_expense_id, month, year).
    generated_expense_id points at the Expense created on the card bill
    when the fixed expense is billed to a credit card.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    fixed_expense_id: str
    month: int = Field(..., ge=0, le=11)
    year: int
    amount: Money = Field(..., ge=0)
    paid_at: datetime = Field(default_factory=utc_now)
    generated_expense_id: Optional[str] = None


class FixedReceipt(BaseModel):
    """Settlement record of a fixed income for month/year."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    fixed_income_id: str
    month: int = Field(..., ge=0, le=11)
    year: int
    amount: Money = Field(..., ge=0)
    received_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# CREDIT CARDS
# =============================================================================

class CreditCard(BaseModel):
    """
    A credit card shared by the household.

    is_paid/paid_at are legacy global flags. Whether a given bill was paid
    is tracked per cycle by CreditCardPayment.
    """
    model_config = ConfigDict(str_strip_whitespace=True, frozen=True)

    id: str = Field(default_factory=new_id)
    name: str = Field(..., min_length=1, max_length=100)
    limit: Money = Field(..., ge=0)
    closing_day: int = Field(..., ge=1, le=31)
    due_day: int = Field(..., ge=1, le=31)
    is_paid: bool = False
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class CreditCardPayment(BaseModel):
    """Settlement record of one credit card bill (card, month, year)."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    credit_card_id: str
    month: int = Field(..., ge=0, le=11)
    year: int
    amount: Money = Field(..., ge=0)
    paid_at: datetime = Field(default_factory=utc_now)
    paid_by: Optional[str] = None
