"""
Period Reports

Realized totals for an arbitrary date range, and the month-by-month
evolution of income against spending.

Expenses are what was LAUNCHED as Expense rows in the range. Income is
ad-hoc cash income plus fixed receipts actually received in the range.
"""

from collections import defaultdict
from datetime import date
from decimal import Decimal

from household_finance.models.finance import (
    CashMovementType,
    Expense,
    MonthlyFilter,
    shift_month,
)
from household_finance.models.views import (
    ZERO,
    BreakdownItem,
    MonthlyEvolutionPoint,
    PeriodReport,
    ReportFilters,
)
from household_finance.engine.balance import money_sum
from household_finance.engine.recurrence import (
    get_active_fixed_expenses,
    get_active_fixed_incomes,
)
from household_finance.state import FinanceState


PERCENT = Decimal("0.01")


def _matches(expense: Expense, filters: ReportFilters) -> bool:
    if not filters.start_date <= expense.date <= filters.end_date:
        return False
    if filters.category and expense.category != filters.category:
        return False
    if filters.payment_method and expense.payment_method != filters.payment_method:
        return False
    if filters.user_id and expense.user_id != filters.user_id:
        return False
    if filters.description and filters.description.lower() not in expense.description.lower():
        return False
    return True


def _breakdown(totals: dict[str, Decimal]) -> list[BreakdownItem]:
    """Non-zero totals, largest first."""
    return [
        BreakdownItem(name=name, value=value)
        for name, value in sorted(totals.items(), key=lambda item: item[1], reverse=True)
        if value > 0
    ]


def build_period_report(state: FinanceState, filters: ReportFilters) -> PeriodReport:
    """Totals and breakdowns of everything realized between the filter dates."""
    expenses = sorted(
        (e for e in state.expenses if _matches(e, filters)),
        key=lambda e: e.date,
        reverse=True,
    )
    total_expenses = money_sum(e.amount for e in expenses)

    cash_income = money_sum(
        m.amount for m in state.cash_movements
        if m.type == CashMovementType.INCOME
        and filters.start_date <= m.date <= filters.end_date
    )
    receipts = money_sum(
        r.amount for r in state.fixed_receipts
        if filters.start_date <= r.received_at.date() <= filters.end_date
    )
    total_income = cash_income + receipts
    balance = total_income - total_expenses
    savings_rate = (
        (balance / total_income * 100).quantize(PERCENT)
        if total_income > 0
        else ZERO
    )

    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_payment_method: dict[str, Decimal] = defaultdict(lambda: ZERO)
    for expense in expenses:
        by_category[expense.category.value] += expense.amount
        by_payment_method[expense.payment_method] += expense.amount

    return PeriodReport(
        filters=filters,
        expenses=expenses,
        total_expenses=total_expenses,
        total_income=total_income,
        balance=balance,
        savings_rate=savings_rate,
        by_category=_breakdown(by_category),
        by_payment_method=_breakdown(by_payment_method),
    )


def monthly_evolution(
    state: FinanceState,
    end: date,
    months: int = 6,
) -> list[MonthlyEvolutionPoint]:
    """
    Income against spending for the `months` months ending at `end`.

    Spending = expenses of the month + active fixed expenses. Expenses
    generated by settling a card-linked fixed expense are left out, the
    fixed template already counts them.
    Income = cash income of the month + active fixed incomes.
    """
    points = []
    end_month = MonthlyFilter.for_date(end)
    generated_ids = state.generated_expense_ids()
    for offset in range(months - 1, -1, -1):
        month, year = shift_month(end_month.month, end_month.year, -offset)
        bucket = MonthlyFilter(month=month, year=year)

        expenses = money_sum(
            e.amount for e in state.expenses
            if bucket.contains(e.date) and e.id not in generated_ids
        ) + money_sum(f.amount for f in get_active_fixed_expenses(state, month, year))

        income = money_sum(
            m.amount for m in state.cash_movements
            if m.type == CashMovementType.INCOME and bucket.contains(m.date)
        ) + money_sum(f.amount for f in get_active_fixed_incomes(state, month, year))

        points.append(MonthlyEvolutionPoint(
            month=month,
            year=year,
            expenses=expenses,
            income=income,
            balance=income - expenses,
        ))
    return points
