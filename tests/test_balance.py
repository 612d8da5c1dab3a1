"""
Tests for the Balance & Dashboard Calculator
"""

from datetime import date, datetime, timezone
from decimal import Decimal

from conftest import MAY, YEAR, make_state
from household_finance.engine import (
    get_current_balance,
    get_dashboard_data,
    get_investment_yield,
    get_monthly_data,
    get_total_investments,
    get_weighted_average_yield,
)
from household_finance.models import (
    CashMovement,
    CashMovementType,
    CreditCard,
    CreditCardPayment,
    Expense,
    ExpenseType,
    FinancialSettings,
    FixedExpense,
    FixedIncome,
    FixedPayment,
    FixedReceipt,
    Investment,
    MonthlyFilter,
    User,
)


PAID_AT = datetime(2024, 5, 6, tzinfo=timezone.utc)


def cash_expense(amount: str, day: date, **kwargs) -> Expense:
    return Expense(amount=amount, date=day, payment_method="pix", **kwargs)


def card_expense(amount: str, day: date, card: str = "Visa", **kwargs) -> Expense:
    return Expense(
        amount=amount,
        date=day,
        type=ExpenseType.CARTAO_CREDITO,
        payment_method=card,
        **kwargs,
    )


class TestCurrentBalance:
    """Tests for get_current_balance."""

    def test_only_cash_instruments_move_the_balance(self):
        """Test that card spending is deferred while cash spending is not."""
        state = make_state(
            initial_balance="1000",
            expenses=[
                cash_expense("100", date(2024, 5, 1)),
                Expense(amount="20", date=date(2024, 5, 2), payment_method="debito"),
                Expense(amount="30", date=date(2024, 5, 2), payment_method="dinheiro"),
                card_expense("500", date(2024, 5, 3)),
            ],
            cash_movements=[
                CashMovement(type=CashMovementType.INCOME, amount="250", date=date(2024, 5, 1)),
                CashMovement(type=CashMovementType.OUTCOME, amount="50", date=date(2024, 5, 1)),
            ],
        )

        assert get_current_balance(state) == Decimal("1050.00")

    def test_receipts_count_all_time(self):
        """Test that fixed receipts of any month add to the balance."""
        income = FixedIncome(
            description="Rent", amount="800", receive_day=1, effective_from=date(2023, 1, 1)
        )
        state = make_state(
            initial_balance="0",
            fixed_incomes=[income],
            fixed_receipts=[
                FixedReceipt(fixed_income_id=income.id, month=0, year=2023, amount="800"),
                FixedReceipt(fixed_income_id=income.id, month=4, year=2024, amount="800"),
            ],
        )

        assert get_current_balance(state) == Decimal("1600.00")

    def test_card_linked_fixed_payments_are_excluded(self):
        """Test that only fixed payments settled from cash reduce the balance."""
        card = CreditCard(name="Visa", limit="1000", closing_day=10, due_day=20)
        cash_fixed = FixedExpense(
            name="Rent", amount="700", due_day=5, effective_from=date(2024, 1, 1)
        )
        card_fixed = FixedExpense(
            name="Phone", amount="60", due_day=5, credit_card_id=card.id,
            effective_from=date(2024, 1, 1),
        )
        state = make_state(
            initial_balance="1000",
            credit_cards=[card],
            fixed_expenses=[cash_fixed, card_fixed],
            fixed_payments=[
                FixedPayment(fixed_expense_id=cash_fixed.id, month=MAY, year=YEAR, amount="700"),
                FixedPayment(
                    fixed_expense_id=card_fixed.id, month=MAY, year=YEAR, amount="60",
                    generated_expense_id="generated",
                ),
            ],
        )

        assert get_current_balance(state) == Decimal("300.00")

    def test_paid_card_bills_leave_cash(self):
        """Test that a paid card bill reduces the balance."""
        card = CreditCard(name="Visa", limit="1000", closing_day=10, due_day=20)
        state = make_state(
            initial_balance="1000",
            credit_cards=[card],
            credit_card_payments=[
                CreditCardPayment(credit_card_id=card.id, month=MAY, year=YEAR, amount="400"),
            ],
        )

        assert get_current_balance(state) == Decimal("600.00")


class TestInvestments:
    """Tests for investment totals and yields."""

    def test_weighted_average_yield(self):
        """Test (1000*1.0 + 3000*0.5) / 4000 = 0.625."""
        state = make_state(investments=[
            Investment(amount="1000", yield_rate="1.0", date=date(2024, 1, 1)),
            Investment(amount="3000", yield_rate="0.5", date=date(2024, 2, 1)),
        ])

        assert get_weighted_average_yield(state) == Decimal("0.625")

    def test_weighted_average_without_investments(self):
        """Test that no investments means a zero yield."""
        assert get_weighted_average_yield(make_state()) == Decimal("0")

    def test_total_and_monthly_yield(self):
        """Test that the initial investment is included in the total."""
        state = make_state(investments=[
            Investment(amount="1500", yield_rate="1", date=date(2024, 1, 1)),
        ]).model_copy(update={
            "settings": FinancialSettings(initial_investment="500", monthly_yield="1.5"),
        })

        assert get_total_investments(state) == Decimal("2000.00")
        assert get_investment_yield(state) == Decimal("30.00")


class TestDashboard:
    """Tests for get_dashboard_data."""

    def test_projected_balance(self):
        """Test 1000 + 500 - 200 - 300 + 50 = 1050."""
        card = CreditCard(name="Visa", limit="5000", closing_day=25, due_day=5)
        state = make_state(
            initial_balance="1000",
            credit_cards=[card],
            fixed_incomes=[FixedIncome(
                description="Freelance", amount="500", receive_day=10,
                effective_from=date(2024, 1, 1),
            )],
            fixed_expenses=[FixedExpense(
                name="Water", amount="200", due_day=10, effective_from=date(2024, 1, 1),
            )],
            expenses=[card_expense("300", date(2024, 5, 12))],
        ).model_copy(update={
            "settings": FinancialSettings(
                initial_balance="1000", initial_investment="5000", monthly_yield="1",
            ),
        })

        dashboard = get_dashboard_data(state)

        assert dashboard.current_balance == Decimal("1000.00")
        assert dashboard.pending_fixed_to_receive == Decimal("500.00")
        assert dashboard.pending_fixed_to_pay == Decimal("200.00")
        assert dashboard.pending_cards_total == Decimal("300.00")
        assert dashboard.investment_yield == Decimal("50.00")
        assert dashboard.projected_balance == Decimal("1050.00")

    def test_no_double_counting_of_generated_expenses(self):
        """Test that generated card rows stay out of variable expenses."""
        card = CreditCard(name="Visa", limit="5000", closing_day=25, due_day=5)
        fixed = FixedExpense(
            name="Netflix", amount="40", due_day=5, credit_card_id=card.id,
            effective_from=date(2024, 1, 1),
        )
        generated = card_expense("40", date(2024, 5, 5), description="Netflix (Fixo)")
        state = make_state(
            credit_cards=[card],
            fixed_expenses=[fixed],
            expenses=[generated, card_expense("60", date(2024, 5, 8))],
            fixed_payments=[FixedPayment(
                fixed_expense_id=fixed.id, month=MAY, year=YEAR, amount="40",
                paid_at=PAID_AT, generated_expense_id=generated.id,
            )],
        )

        dashboard = get_dashboard_data(state)

        assert dashboard.total_expenses_of_month == Decimal("100.00")
        assert dashboard.variable_expenses == Decimal("60.00")
        assert (
            dashboard.total_expenses_of_month - dashboard.variable_expenses
            == generated.amount
        )
        # The full bill still shows the generated row
        assert dashboard.pending_credit_cards[0].amount == Decimal("100.00")

    def test_card_linked_fixed_is_not_pending_cash(self):
        """Test that unpaid card-linked fixed items are left to the card bill."""
        card = CreditCard(name="Visa", limit="5000", closing_day=25, due_day=5)
        state = make_state(
            credit_cards=[card],
            fixed_expenses=[
                FixedExpense(name="Rent", amount="900", due_day=5,
                             effective_from=date(2024, 1, 1)),
                FixedExpense(name="Spotify", amount="20", due_day=5,
                             credit_card_id=card.id, effective_from=date(2024, 1, 1)),
            ],
        )

        dashboard = get_dashboard_data(state)

        assert dashboard.pending_fixed_to_pay == Decimal("900.00")
        assert dashboard.total_fixed_expenses_value == Decimal("920.00")

    def test_paid_card_bill_is_not_pending(self):
        """Test that a card with a payment for the month has no pending bill."""
        card = CreditCard(name="Visa", limit="5000", closing_day=25, due_day=5)
        state = make_state(
            credit_cards=[card],
            expenses=[card_expense("300", date(2024, 5, 12))],
            credit_card_payments=[
                CreditCardPayment(credit_card_id=card.id, month=MAY, year=YEAR, amount="300"),
            ],
        )

        assert get_dashboard_data(state).pending_credit_cards == []

    def test_top_users_sorted_descending(self):
        """Test the per-user ranking of the month's spending."""
        ana, bruno = User(name="Ana"), User(name="Bruno")
        state = make_state(
            users=[ana, bruno],
            expenses=[
                cash_expense("50", date(2024, 5, 1), user_id=ana.id),
                cash_expense("120", date(2024, 5, 2), user_id=bruno.id),
                cash_expense("999", date(2024, 4, 2), user_id=ana.id),
            ],
        )

        ranking = get_dashboard_data(state).top_users

        assert [u.user_name for u in ranking] == ["Bruno", "Ana"]
        assert ranking[0].total_amount == Decimal("120.00")

    def test_explicit_month_overrides_selection(self):
        """Test that a MonthlyFilter argument replaces the selected month."""
        state = make_state(expenses=[cash_expense("10", date(2024, 6, 1))])

        assert get_dashboard_data(state).total_expenses_of_month == Decimal("0")
        june = get_dashboard_data(state, MonthlyFilter(month=5, year=2024))
        assert june.total_expenses_of_month == Decimal("10.00")


class TestMonthlyData:
    """Tests for get_monthly_data."""

    def test_partition(self):
        """Test that records of the month are split by kind."""
        state = make_state(
            expenses=[
                cash_expense("10", date(2024, 5, 1)),
                card_expense("20", date(2024, 5, 2)),
                cash_expense("30", date(2024, 6, 1)),
            ],
            cash_movements=[
                CashMovement(type=CashMovementType.INCOME, amount="5", date=date(2024, 5, 9)),
            ],
            investments=[Investment(amount="100", date=date(2024, 5, 20))],
            fixed_expenses=[FixedExpense(
                name="Rent", amount="900", due_day=5, effective_from=date(2024, 6, 1),
            )],
        )

        data = get_monthly_data(state, MAY, YEAR)

        assert [e.amount for e in data.variable_expenses] == [Decimal("10.00")]
        assert [e.amount for e in data.credit_card_expenses] == [Decimal("20.00")]
        assert len(data.cash_movements) == 1
        assert len(data.investments) == 1
        # Rent only starts in June
        assert data.fixed_expenses == []
