"""
Balance & Dashboard Calculator

Derives cash balance, monthly aggregates, pending totals and the projected
end-of-month balance from a FinanceState snapshot.

DESIGN DECISION: Only cash-settling instruments (pix, debit, money, cash
movements, fixed payments settled without a card charge) move the cash
balance when they happen. Card-billed spending is deferred to the card
bill, and reaches cash when the bill itself is paid (CreditCardPayment).

Nothing is cached: every call recomputes from the snapshot it is given.
"""

from decimal import Decimal
from typing import Iterable, Optional

from household_finance.models.finance import (
    CashMovementType,
    ExpenseType,
    FixedExpense,
    MonthlyFilter,
    to_money,
)
from household_finance.models.views import (
    ZERO,
    DashboardData,
    MonthlyData,
    PendingCardBill,
    TopUser,
)
from household_finance.engine.recurrence import (
    get_active_fixed_expenses,
    get_active_fixed_incomes,
)
from household_finance.state import FinanceState


def money_sum(values: Iterable[Decimal]) -> Decimal:
    return sum(values, ZERO)


def billed_to_card(state: FinanceState, fixed: FixedExpense) -> bool:
    """Whether a fixed expense lands on an existing card (dangling links count as cash)."""
    return bool(fixed.credit_card_id) and state.credit_card_by_id(fixed.credit_card_id) is not None


def get_current_balance(state: FinanceState) -> Decimal:
    """
    Cash available right now.

    initial balance
      + cash income + every fixed receipt (all time)
      - cash outcome - cash-settled expenses
      - fixed payments settled in cash (no generated card expense)
      - paid card bills
    """
    income = money_sum(
        m.amount for m in state.cash_movements
        if m.type == CashMovementType.INCOME
    )
    outcome = money_sum(
        m.amount for m in state.cash_movements
        if m.type == CashMovementType.OUTCOME
    )
    receipts = money_sum(r.amount for r in state.fixed_receipts)
    cash_expenses = money_sum(e.amount for e in state.expenses if e.is_cash)

    # Classified by how each payment was settled, not by the current card link
    cash_fixed_payments = money_sum(
        p.amount for p in state.fixed_payments
        if p.generated_expense_id is None
    )
    card_bills_paid = money_sum(p.amount for p in state.credit_card_payments)

    return (
        state.settings.initial_balance
        + income
        + receipts
        - outcome
        - cash_expenses
        - cash_fixed_payments
        - card_bills_paid
    )


def get_total_investments(state: FinanceState) -> Decimal:
    return state.settings.initial_investment + money_sum(
        i.amount for i in state.investments
    )


def get_investment_yield(state: FinanceState) -> Decimal:
    """Expected yield of everything invested over one month."""
    return to_money(get_total_investments(state) * state.settings.monthly_yield / 100)


def get_weighted_average_yield(state: FinanceState) -> Decimal:
    """Value-weighted average monthly yield (%) of recorded investments."""
    total = money_sum(i.amount for i in state.investments)
    if total == 0:
        return Decimal("0")
    weighted = sum((i.amount * i.yield_rate for i in state.investments), Decimal("0"))
    return weighted / total


def get_dashboard_data(
    state: FinanceState,
    selected: Optional[MonthlyFilter] = None,
) -> DashboardData:
    """Aggregates for the selected month (defaults to the state's selection)."""
    selected = selected or state.selected_month
    month, year = selected.month, selected.year

    expenses_of_month = [e for e in state.expenses if selected.contains(e.date)]
    generated_ids = state.generated_expense_ids()
    variable_expenses = money_sum(
        e.amount for e in expenses_of_month if e.id not in generated_ids
    )

    active_fixed_expenses = get_active_fixed_expenses(state, month, year)
    active_fixed_incomes = get_active_fixed_incomes(state, month, year)

    pending_cards = []
    for card in state.credit_cards:
        if state.find_credit_card_payment(card.id, month, year):
            continue
        bill = money_sum(
            e.amount for e in expenses_of_month if e.payment_method == card.name
        )
        pending_cards.append(PendingCardBill(card=card, amount=bill))

    # Card-linked fixed expenses show up on the card bill, not here
    pending_fixed_to_pay = money_sum(
        f.amount for f in active_fixed_expenses
        if not f.is_paid and not billed_to_card(state, f.fixed_expense)
    )
    pending_fixed_to_receive = money_sum(
        f.amount for f in active_fixed_incomes if not f.is_received
    )
    pending_cards_total = money_sum(c.amount for c in pending_cards)

    current_balance = get_current_balance(state)
    total_investments = get_total_investments(state)
    investment_yield = get_investment_yield(state)
    projected_balance = (
        current_balance
        + pending_fixed_to_receive
        - pending_fixed_to_pay
        - pending_cards_total
        + investment_yield
    )

    top_users = sorted(
        (
            TopUser(
                user_id=user.id,
                user_name=user.name,
                total_amount=money_sum(
                    e.amount for e in expenses_of_month
                    if e.user_id == user.id and e.id not in generated_ids
                ),
            )
            for user in state.users
        ),
        key=lambda u: u.total_amount,
        reverse=True,
    )

    return DashboardData(
        month=month,
        year=year,
        expenses_of_month=expenses_of_month,
        total_expenses_of_month=money_sum(e.amount for e in expenses_of_month),
        generated_expense_ids=generated_ids,
        variable_expenses=variable_expenses,
        active_fixed_expenses=active_fixed_expenses,
        active_fixed_incomes=active_fixed_incomes,
        total_fixed_expenses_value=money_sum(f.amount for f in active_fixed_expenses),
        total_fixed_incomes_value=money_sum(f.amount for f in active_fixed_incomes),
        pending_credit_cards=pending_cards,
        pending_fixed_to_pay=pending_fixed_to_pay,
        pending_fixed_to_receive=pending_fixed_to_receive,
        pending_cards_total=pending_cards_total,
        current_balance=current_balance,
        total_investments=total_investments,
        investment_yield=investment_yield,
        projected_balance=projected_balance,
        top_users=top_users,
    )


def get_monthly_data(state: FinanceState, month: int, year: int) -> MonthlyData:
    """Everything recorded for one month, partitioned by kind."""
    selected = MonthlyFilter(month=month, year=year)
    expenses = [e for e in state.expenses if selected.contains(e.date)]
    return MonthlyData(
        month=month,
        year=year,
        fixed_expenses=get_active_fixed_expenses(state, month, year),
        variable_expenses=[e for e in expenses if e.type == ExpenseType.VARIAVEL],
        credit_card_expenses=[e for e in expenses if e.type == ExpenseType.CARTAO_CREDITO],
        cash_movements=[m for m in state.cash_movements if selected.contains(m.date)],
        investments=[i for i in state.investments if selected.contains(i.date)],
    )
