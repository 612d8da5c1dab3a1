"""
Finance Engine Package

Pure calculators over a FinanceState snapshot, plus the reconciliation
engine that settles and reverses recurring obligations.
"""

from household_finance.engine.balance import (
    get_current_balance,
    get_dashboard_data,
    get_investment_yield,
    get_monthly_data,
    get_total_investments,
    get_weighted_average_yield,
)
from household_finance.engine.credit_card import (
    get_bill_for_date,
    get_card_bill,
    get_cards_overview,
)
from household_finance.engine.installments import split_amount, split_installments
from household_finance.engine.projection import average_cash_spending, project_finances
from household_finance.engine.reconciliation import (
    PaymentReconciliationEngine,
    ReconciliationError,
    ToggleOutcome,
    ToggleResult,
)
from household_finance.engine.recurrence import (
    due_date,
    get_active_fixed_expenses,
    get_active_fixed_incomes,
    is_active,
    month_bounds,
)
from household_finance.engine.reports import build_period_report, monthly_evolution

__all__ = [
    # Recurrence
    "due_date",
    "get_active_fixed_expenses",
    "get_active_fixed_incomes",
    "is_active",
    "month_bounds",
    # Balance & dashboard
    "get_current_balance",
    "get_dashboard_data",
    "get_investment_yield",
    "get_monthly_data",
    "get_total_investments",
    "get_weighted_average_yield",
    # Credit cards
    "get_bill_for_date",
    "get_card_bill",
    "get_cards_overview",
    # Reconciliation
    "PaymentReconciliationEngine",
    "ReconciliationError",
    "ToggleOutcome",
    "ToggleResult",
    # Supplementary
    "average_cash_spending",
    "build_period_report",
    "monthly_evolution",
    "project_finances",
    "split_amount",
    "split_installments",
]
