"""
Financial Projection

Month-by-month forecast of cash and invested balances.

Month 0 is the current month. Its cash is the dashboard's projected
end-of-month balance, so everything already known about this month is
priced in. Every following month:

    cash     += active fixed incomes
              - active fixed expenses
              - card expenses dated in that month (future installments)
              - average cash spending of the last N months
    invested += invested * weighted average yield

DESIGN DECISION: The spending average only looks at cash expenses
(pix, debit, money). Card spending is already covered by the installment
rows that exist for future months, so averaging it too would count it twice.
Months without any spending are ignored by the average.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from household_finance.models.finance import (
    CashMovementType,
    ExpenseType,
    MonthlyFilter,
    shift_month,
    to_money,
)
from household_finance.models.views import ProjectionPoint
from household_finance.engine.balance import (
    get_dashboard_data,
    get_total_investments,
    get_weighted_average_yield,
    money_sum,
)
from household_finance.engine.recurrence import (
    get_active_fixed_expenses,
    get_active_fixed_incomes,
)
from household_finance.state import FinanceState


def average_cash_spending(
    state: FinanceState,
    month: int,
    year: int,
    months: int = 3,
) -> Decimal:
    """Average monthly cash spending over the `months` months before (month, year)."""
    totals = []
    for offset in range(1, months + 1):
        m, y = shift_month(month, year, -offset)
        bucket = MonthlyFilter(month=m, year=y)
        total = money_sum(
            e.amount for e in state.expenses
            if e.is_cash and bucket.contains(e.date)
        )
        if total > 0:
            totals.append(total)
    if not totals:
        return Decimal("0.00")
    return to_money(money_sum(totals) / len(totals))


def _card_expenses_in(state: FinanceState, month: int, year: int) -> Decimal:
    bucket = MonthlyFilter(month=month, year=year)
    # Settled card-linked fixed expenses are already in the fixed total
    generated_ids = state.generated_expense_ids()
    return money_sum(
        e.amount for e in state.expenses
        if e.type == ExpenseType.CARTAO_CREDITO
        and bucket.contains(e.date)
        and e.id not in generated_ids
    )


def project_finances(
    state: FinanceState,
    months: int = 12,
    variable_average_months: int = 3,
    today: Optional[date] = None,
) -> list[ProjectionPoint]:
    """
    Forecast `months` months past the current one.

    Returns months + 1 points; the first one is the current month.
    """
    today = today or date.today()
    start = MonthlyFilter.for_date(today)
    monthly_rate = get_weighted_average_yield(state) / 100
    average_spending = average_cash_spending(
        state, start.month, start.year, variable_average_months
    )

    dashboard = get_dashboard_data(state, start)
    cash = dashboard.projected_balance
    invested = get_total_investments(state)

    points = []
    for offset in range(months + 1):
        month, year = shift_month(start.month, start.year, offset)
        fixed_incomes = money_sum(
            f.amount for f in get_active_fixed_incomes(state, month, year)
        )
        fixed_expenses = money_sum(
            f.amount for f in get_active_fixed_expenses(state, month, year)
        )
        yield_amount = to_money(invested * monthly_rate) if invested > 0 else Decimal("0.00")

        if offset == 0:
            income = fixed_incomes + _cash_income_in(state, start)
            expenses = fixed_expenses + dashboard.variable_expenses
        else:
            invested += yield_amount
            income = fixed_incomes
            expenses = (
                fixed_expenses
                + _card_expenses_in(state, month, year)
                + average_spending
            )
            cash = cash + income - expenses

        points.append(ProjectionPoint(
            month=month,
            year=year,
            cash=cash,
            invested=invested,
            balance=cash + invested,
            income=income,
            expenses=expenses,
            yield_amount=yield_amount,
            is_current=offset == 0,
        ))
    return points


def _cash_income_in(state: FinanceState, selected: MonthlyFilter) -> Decimal:
    return money_sum(
        m.amount for m in state.cash_movements
        if m.type == CashMovementType.INCOME and selected.contains(m.date)
    )
