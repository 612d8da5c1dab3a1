"""
Installment Splitting

A card purchase paid in N installments is stored as N Expense rows, one per
consecutive month, so each lands on the bill it belongs to.

Amounts are split in cents: every installment gets total // N cents and the
remainder cents go to the first installments, so the rows always sum to the
purchase total exactly.
"""

from decimal import Decimal

from household_finance.models.finance import (
    CENTS,
    Expense,
    Installments,
    clamp_day,
    shift_month,
    to_money,
)


def split_amount(total: Decimal, count: int) -> list[Decimal]:
    """Split a money amount into `count` cent-exact parts (largest first)."""
    if count < 1:
        raise ValueError("Installment count must be at least 1")
    cents = int(to_money(total) / CENTS)
    base, remainder = divmod(cents, count)
    return [
        (Decimal(base + (1 if index < remainder else 0)) * CENTS)
        for index in range(count)
    ]


def split_installments(expense: Expense, count: int) -> list[Expense]:
    """
    Expand a purchase into one Expense per installment.

    The first installment keeps the purchase date; later ones fall on the
    same day of the following months (clamped to the month's last day).
    Descriptions get a "(k/N)" suffix when N > 1.
    """
    if count == 1:
        return [expense.model_copy(update={"installments": Installments(current=1, total=1)})]

    first_month, first_year = expense.date.month - 1, expense.date.year
    expenses = []
    for index, amount in enumerate(split_amount(expense.amount, count)):
        month, year = shift_month(first_month, first_year, index)
        data = expense.model_dump(exclude={"id", "created_at"})
        data.update(
            description=f"{expense.description} ({index + 1}/{count})".strip(),
            amount=amount,
            date=clamp_day(expense.date.day, month, year),
            installments=Installments(current=index + 1, total=count),
        )
        expenses.append(Expense(**data))
    return expenses
