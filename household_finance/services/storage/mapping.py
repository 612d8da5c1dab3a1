"""
Row <-> Entity Mapping

Converts flat snake_case rows of the hosted store into typed entities and
back. Conversions follow three rules:
1. Money columns become Decimal via their string form (never float math)
2. Date-only columns are read from their YYYY-MM-DD prefix, so a
   timezone shift can never move an expense into the neighbouring day
3. Timestamps are aware UTC datetimes

Nested values are flattened into columns (installments_current /
installments_total) because the store has no composite columns.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Optional

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
    Installments,
    Investment,
    User,
    to_money,
)
from household_finance.services.storage.interface import Row, Tables


# =============================================================================
# SCALAR PARSERS
# =============================================================================

def parse_date(value: Any) -> Optional[date]:
    """Parse a date-only column as a calendar date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamp column as an aware UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip().replace("Z", "+00:00")
        parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def format_money(value: Optional[Decimal]) -> Optional[str]:
    return str(value) if value is not None else None


def _optional_str(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


def _money(value: Any, default: str = "0") -> Decimal:
    return to_money(default if value is None or value == "" else value)


# =============================================================================
# ENTITY MAPPERS
# =============================================================================

def row_to_user(row: Row) -> User:
    return User(
        id=str(row["id"]),
        name=row["name"],
        email=_optional_str(row.get("email")),
        created_at=parse_timestamp(row.get("created_at")),
    )


def user_to_row(user: User) -> Row:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
    }


def row_to_settings(row: Row) -> FinancialSettings:
    return FinancialSettings(
        id=_optional_str(row.get("id")),
        monthly_yield=row.get("monthly_yield") or "0",
        initial_balance=_money(row.get("initial_balance")),
        initial_investment=_money(row.get("initial_investment")),
    )


def settings_to_row(settings: FinancialSettings) -> Row:
    row = {
        "monthly_yield": str(settings.monthly_yield),
        "initial_balance": format_money(settings.initial_balance),
        "initial_investment": format_money(settings.initial_investment),
    }
    if settings.id:
        row["id"] = settings.id
    return row


def row_to_expense(row: Row) -> Expense:
    return Expense(
        id=str(row["id"]),
        description=row.get("description") or "",
        amount=_money(row["amount"]),
        date=parse_date(row["date"]),
        type=row.get("type") or "variavel",
        category=row.get("category") or "outros",
        payment_method=row["payment_method"],
        user_id=_optional_str(row.get("user_id")),
        installments=Installments(
            current=row.get("installments_current") or 1,
            total=row.get("installments_total") or 1,
        ),
        created_at=parse_timestamp(row.get("created_at")),
    )


def expense_to_row(expense: Expense) -> Row:
    return {
        "id": expense.id,
        "description": expense.description,
        "amount": format_money(expense.amount),
        "date": format_date(expense.date),
        "type": expense.type.value,
        "category": expense.category.value,
        "payment_method": expense.payment_method,
        "user_id": expense.user_id,
        "installments_current": expense.installments.current,
        "installments_total": expense.installments.total,
    }


def row_to_fixed_expense(row: Row) -> FixedExpense:
    created_at = parse_timestamp(row.get("created_at"))
    effective_from = parse_date(row.get("effective_from"))
    if effective_from is None and created_at is not None:
        # Rows created before validity windows existed start at creation
        effective_from = created_at.date()
    return FixedExpense(
        id=str(row["id"]),
        name=row["name"],
        category=row.get("category") or "outros",
        amount=_money(row["amount"]),
        due_day=row["due_day"],
        effective_from=effective_from,
        effective_until=parse_date(row.get("effective_until")),
        credit_card_id=_optional_str(row.get("credit_card_id")),
        is_paid=bool(row.get("is_paid", False)),
        created_at=created_at,
    )


def fixed_expense_to_row(fixed: FixedExpense) -> Row:
    return {
        "id": fixed.id,
        "name": fixed.name,
        "category": fixed.category.value,
        "amount": format_money(fixed.amount),
        "due_day": fixed.due_day,
        "effective_from": format_date(fixed.effective_from),
        "effective_until": format_date(fixed.effective_until),
        "credit_card_id": fixed.credit_card_id,
        "is_paid": fixed.is_paid,
    }


def row_to_fixed_income(row: Row) -> FixedIncome:
    created_at = parse_timestamp(row.get("created_at"))
    effective_from = parse_date(row.get("effective_from"))
    if effective_from is None and created_at is not None:
        effective_from = created_at.date()
    return FixedIncome(
        id=str(row["id"]),
        description=row["description"],
        amount=_money(row["amount"]),
        receive_day=row["receive_day"],
        effective_from=effective_from,
        effective_until=parse_date(row.get("effective_until")),
        created_at=created_at,
    )


def fixed_income_to_row(fixed: FixedIncome) -> Row:
    return {
        "id": fixed.id,
        "description": fixed.description,
        "amount": format_money(fixed.amount),
        "receive_day": fixed.receive_day,
        "effective_from": format_date(fixed.effective_from),
        "effective_until": format_date(fixed.effective_until),
    }


def row_to_credit_card(row: Row) -> CreditCard:
    return CreditCard(
        id=str(row["id"]),
        name=row["name"],
        limit=_money(row["limit"]),
        closing_day=row["closing_day"],
        due_day=row["due_day"],
        is_paid=bool(row.get("is_paid", False)),
        paid_at=parse_timestamp(row.get("paid_at")),
        created_at=parse_timestamp(row.get("created_at")),
    )


def credit_card_to_row(card: CreditCard) -> Row:
    return {
        "id": card.id,
        "name": card.name,
        "limit": format_money(card.limit),
        "closing_day": card.closing_day,
        "due_day": card.due_day,
        "is_paid": card.is_paid,
        "paid_at": format_timestamp(card.paid_at),
    }


def row_to_cash_movement(row: Row) -> CashMovement:
    return CashMovement(
        id=str(row["id"]),
        type=row["type"],
        description=row.get("description") or "",
        amount=_money(row["amount"]),
        user_id=_optional_str(row.get("user_id")),
        date=parse_date(row["date"]),
        created_at=parse_timestamp(row.get("created_at")),
    )


def cash_movement_to_row(movement: CashMovement) -> Row:
    return {
        "id": movement.id,
        "type": movement.type.value,
        "description": movement.description,
        "amount": format_money(movement.amount),
        "user_id": movement.user_id,
        "date": format_date(movement.date),
    }


def row_to_investment(row: Row) -> Investment:
    return Investment(
        id=str(row["id"]),
        description=row.get("description") or "",
        amount=_money(row["amount"]),
        yield_rate=row.get("yield_rate") or "0",
        date=parse_date(row["date"]),
        user_id=_optional_str(row.get("user_id")),
        created_at=parse_timestamp(row.get("created_at")),
    )


def investment_to_row(investment: Investment) -> Row:
    return {
        "id": investment.id,
        "description": investment.description,
        "amount": format_money(investment.amount),
        "yield_rate": str(investment.yield_rate),
        "date": format_date(investment.date),
        "user_id": investment.user_id,
    }


def row_to_fixed_payment(row: Row) -> FixedPayment:
    return FixedPayment(
        id=str(row["id"]),
        fixed_expense_id=str(row["fixed_expense_id"]),
        month=row["month"],
        year=row["year"],
        amount=_money(row["amount"]),
        paid_at=parse_timestamp(row.get("paid_at")) or parse_timestamp(row.get("created_at")),
        generated_expense_id=_optional_str(row.get("generated_expense_id")),
    )


def fixed_payment_to_row(payment: FixedPayment) -> Row:
    return {
        "id": payment.id,
        "fixed_expense_id": payment.fixed_expense_id,
        "month": payment.month,
        "year": payment.year,
        "amount": format_money(payment.amount),
        "paid_at": format_timestamp(payment.paid_at),
        "generated_expense_id": payment.generated_expense_id,
    }


def row_to_fixed_receipt(row: Row) -> FixedReceipt:
    return FixedReceipt(
        id=str(row["id"]),
        fixed_income_id=str(row["fixed_income_id"]),
        month=row["month"],
        year=row["year"],
        amount=_money(row["amount"]),
        received_at=parse_timestamp(row.get("received_at")) or parse_timestamp(row.get("created_at")),
    )


def fixed_receipt_to_row(receipt: FixedReceipt) -> Row:
    return {
        "id": receipt.id,
        "fixed_income_id": receipt.fixed_income_id,
        "month": receipt.month,
        "year": receipt.year,
        "amount": format_money(receipt.amount),
        "received_at": format_timestamp(receipt.received_at),
    }


def row_to_credit_card_payment(row: Row) -> CreditCardPayment:
    return CreditCardPayment(
        id=str(row["id"]),
        credit_card_id=str(row["credit_card_id"]),
        month=row["month"],
        year=row["year"],
        amount=_money(row["amount"]),
        paid_at=parse_timestamp(row.get("paid_at")) or parse_timestamp(row.get("created_at")),
        paid_by=_optional_str(row.get("paid_by")),
    )


def credit_card_payment_to_row(payment: CreditCardPayment) -> Row:
    return {
        "id": payment.id,
        "credit_card_id": payment.credit_card_id,
        "month": payment.month,
        "year": payment.year,
        "amount": format_money(payment.amount),
        "paid_at": format_timestamp(payment.paid_at),
        "paid_by": payment.paid_by,
    }


# Table -> (row parser, row builder) for every entity collection
MAPPERS: dict[str, tuple[Callable[[Row], Any], Callable[[Any], Row]]] = {
    Tables.USERS: (row_to_user, user_to_row),
    Tables.SETTINGS: (row_to_settings, settings_to_row),
    Tables.EXPENSES: (row_to_expense, expense_to_row),
    Tables.FIXED_EXPENSES: (row_to_fixed_expense, fixed_expense_to_row),
    Tables.FIXED_INCOMES: (row_to_fixed_income, fixed_income_to_row),
    Tables.CREDIT_CARDS: (row_to_credit_card, credit_card_to_row),
    Tables.CASH_MOVEMENTS: (row_to_cash_movement, cash_movement_to_row),
    Tables.INVESTMENTS: (row_to_investment, investment_to_row),
    Tables.FIXED_EXPENSE_PAYMENTS: (row_to_fixed_payment, fixed_payment_to_row),
    Tables.FIXED_INCOME_RECEIPTS: (row_to_fixed_receipt, fixed_receipt_to_row),
    Tables.CREDIT_CARD_PAYMENTS: (row_to_credit_card_payment, credit_card_payment_to_row),
}


def row_to_entity(table: str, row: Row) -> Any:
    """Parse a row of any known table."""
    return MAPPERS[table][0](row)


def entity_to_row(table: str, entity: Any) -> Row:
    """Build the row of any known table."""
    return MAPPERS[table][1](entity)
