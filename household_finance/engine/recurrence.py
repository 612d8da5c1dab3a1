"""
Recurrence Resolver

Decides whether a recurring template (fixed expense / fixed income) is
active in a month, and whether it was settled there.

A template is active in month M when its validity window overlaps M:
    effective_from <= last day of M
    and (no effective_until or effective_until >= first day of M)

Everything here is a pure function of a FinanceState snapshot.
"""

from datetime import date
from typing import Protocol, Optional

from household_finance.models.finance import clamp_day, last_day_of_month
from household_finance.models.views import ActiveFixedExpense, ActiveFixedIncome
from household_finance.state import FinanceState


class Recurring(Protocol):
    effective_from: date
    effective_until: Optional[date]


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """First and last calendar day of a 0-11 month."""
    return date(year, month + 1, 1), date(year, month + 1, last_day_of_month(month, year))


def is_active(item: Recurring, month: int, year: int) -> bool:
    start, end = month_bounds(month, year)
    if item.effective_from > end:
        return False
    return item.effective_until is None or item.effective_until >= start


def get_active_fixed_expenses(
    state: FinanceState,
    month: int,
    year: int,
) -> list[ActiveFixedExpense]:
    """Fixed expenses active in the month, with their paid state for it."""
    active = []
    for fixed in state.fixed_expenses:
        if not is_active(fixed, month, year):
            continue
        payment = state.find_fixed_payment(fixed.id, month, year)
        active.append(ActiveFixedExpense(
            fixed_expense=fixed,
            is_paid=payment is not None,
            paid_at=payment.paid_at if payment else None,
            payment=payment,
        ))
    return active


def get_active_fixed_incomes(
    state: FinanceState,
    month: int,
    year: int,
) -> list[ActiveFixedIncome]:
    """Fixed incomes active in the month, with their received state for it."""
    active = []
    for fixed in state.fixed_incomes:
        if not is_active(fixed, month, year):
            continue
        receipt = state.find_fixed_receipt(fixed.id, month, year)
        active.append(ActiveFixedIncome(
            fixed_income=fixed,
            is_received=receipt is not None,
            received_at=receipt.received_at if receipt else None,
            receipt=receipt,
        ))
    return active


def due_date(due_day: int, month: int, year: int) -> date:
    """Theoretical due date of a recurring item in a month (clamped to month end)."""
    return clamp_day(due_day, month, year)
