"""
Data Models Package

This package contains all Pydantic models used by the finance engine.
All data flowing through the system must conform to these schemas.
"""

from household_finance.models.finance import (
    CASH_PAYMENT_METHODS,
    CashMovement,
    CashMovementType,
    CreditCard,
    CreditCardPayment,
    Expense,
    ExpenseCategory,
    ExpenseType,
    FinancialSettings,
    FixedExpense,
    FixedIncome,
    FixedPayment,
    FixedReceipt,
    Installments,
    Investment,
    MonthlyFilter,
    PaymentMethod,
    User,
)
from household_finance.models.views import (
    ActiveFixedExpense,
    ActiveFixedIncome,
    BillLine,
    BillLineType,
    BreakdownItem,
    CardBillSummary,
    CardsOverview,
    DashboardData,
    MonthlyData,
    MonthlyEvolutionPoint,
    PendingCardBill,
    PeriodReport,
    ProjectionPoint,
    ReportFilters,
    TopUser,
)
from household_finance.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Entities
    "CASH_PAYMENT_METHODS",
    "CashMovement",
    "CashMovementType",
    "CreditCard",
    "CreditCardPayment",
    "Expense",
    "ExpenseCategory",
    "ExpenseType",
    "FinancialSettings",
    "FixedExpense",
    "FixedIncome",
    "FixedPayment",
    "FixedReceipt",
    "Installments",
    "Investment",
    "MonthlyFilter",
    "PaymentMethod",
    "User",
    # Views
    "ActiveFixedExpense",
    "ActiveFixedIncome",
    "BillLine",
    "BillLineType",
    "BreakdownItem",
    "CardBillSummary",
    "CardsOverview",
    "DashboardData",
    "MonthlyData",
    "MonthlyEvolutionPoint",
    "PendingCardBill",
    "PeriodReport",
    "ProjectionPoint",
    "ReportFilters",
    "TopUser",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
