"""
Credit-Card Bill Projector

Computes, for a card and a selected month:
- the current bill (charges whose billing cycle lands in that month)
- a projection of card-linked fixed expenses not yet settled but expected
  on that bill
- the standing commitment against the credit line

BILLING CYCLE: a charge dated on or after the card's closing_day rolls into
the NEXT month's bill; earlier charges belong to their own month's bill.

Cards are matched to expenses by NAME (Expense.payment_method), which is
how the stored rows link them.
"""

from datetime import date
from decimal import Decimal

from household_finance.models.finance import CreditCard, MonthlyFilter, shift_month
from household_finance.models.views import (
    ZERO,
    BillLine,
    BillLineType,
    CardBillSummary,
    CardsOverview,
)
from household_finance.engine.balance import money_sum
from household_finance.engine.recurrence import due_date, is_active
from household_finance.state import FinanceState


PERCENT = Decimal("0.01")


def get_bill_for_date(card: CreditCard, day: date) -> MonthlyFilter:
    """The bill (month, year) a charge made on `day` belongs to."""
    month, year = day.month - 1, day.year
    if day.day >= card.closing_day:
        month, year = shift_month(month, year, 1)
    return MonthlyFilter(month=month, year=year)


def _utilization(used: Decimal, limit: Decimal) -> Decimal:
    if limit <= 0:
        return ZERO
    return (used / limit * 100).quantize(PERCENT)


def get_card_bill(
    state: FinanceState,
    card: CreditCard,
    month: int,
    year: int,
) -> CardBillSummary:
    """Bill, projection and limit usage of one card for the selected month."""
    selected = MonthlyFilter(month=month, year=year)
    payments_by_generated = {
        p.generated_expense_id: p
        for p in state.fixed_payments
        if p.generated_expense_id
    }

    extract: list[BillLine] = []

    # Charges already on the card
    for expense in state.expenses:
        if expense.payment_method != card.name:
            continue
        payment = payments_by_generated.get(expense.id)
        # A settled fixed expense is charged when it was paid
        effective = payment.paid_at.date() if payment else expense.date
        if get_bill_for_date(card, effective) != selected:
            continue
        extract.append(BillLine(
            date=effective,
            description=expense.description,
            amount=expense.amount,
            type=BillLineType.FIXED_PAID if payment else BillLineType.VARIABLE,
            expense_id=expense.id,
            fixed_expense_id=payment.fixed_expense_id if payment else None,
        ))

    # Fixed expenses expected on this bill but not settled yet. The prior
    # month is checked too: a due date after closing day rolls forward.
    linked = [f for f in state.fixed_expenses if f.credit_card_id == card.id]
    for bucket in (selected, selected.previous()):
        for fixed in linked:
            if not is_active(fixed, bucket.month, bucket.year):
                continue
            if state.find_fixed_payment(fixed.id, bucket.month, bucket.year):
                continue
            expected = due_date(fixed.due_day, bucket.month, bucket.year)
            if get_bill_for_date(card, expected) != selected:
                continue
            extract.append(BillLine(
                date=expected,
                description=fixed.name,
                amount=fixed.amount,
                type=BillLineType.FIXED_PROJECTED,
                fixed_expense_id=fixed.id,
            ))

    extract.sort(key=lambda line: line.date)

    current_total = money_sum(
        line.amount for line in extract
        if line.type != BillLineType.FIXED_PROJECTED
    )
    pending_total = money_sum(
        line.amount for line in extract
        if line.type == BillLineType.FIXED_PROJECTED
    )

    generated_ids = state.generated_expense_ids()
    committed_total = money_sum(
        e.amount for e in state.expenses
        if e.payment_method == card.name and e.id not in generated_ids
    ) + money_sum(f.amount for f in linked)

    return CardBillSummary(
        card=card,
        month=month,
        year=year,
        current_bill_total=current_total,
        pending_total=pending_total,
        projected_bill_total=current_total + pending_total,
        committed_total=committed_total,
        available_limit=card.limit - committed_total,
        utilization=_utilization(committed_total, card.limit),
        is_paid=state.find_credit_card_payment(card.id, month, year) is not None,
        extract=extract,
    )


def get_cards_overview(state: FinanceState, month: int, year: int) -> CardsOverview:
    """Every card's bill plus combined totals."""
    cards = [get_card_bill(state, card, month, year) for card in state.credit_cards]
    total_limit = money_sum(c.card.limit for c in cards)
    total_committed = money_sum(c.committed_total for c in cards)
    return CardsOverview(
        month=month,
        year=year,
        cards=cards,
        total_limit=total_limit,
        total_committed=total_committed,
        total_current=money_sum(c.current_bill_total for c in cards),
        total_projected=money_sum(c.projected_bill_total for c in cards),
        total_available=total_limit - total_committed,
        utilization=_utilization(total_committed, total_limit),
    )
