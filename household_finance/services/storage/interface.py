"""
Abstract Remote Store Interface

DESIGN DECISION: We define an abstract interface for the hosted data store.
This allows us to:
1. Keep the finance engine decoupled from Supabase
2. Use in-memory storage for testing
3. Swap backends without touching reconciliation logic

The interface is intentionally simple - we're not building a full ORM.
Rows are flat dicts in the store's snake_case column shape; turning
them into entities is the job of the mapping module.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


Row = dict[str, Any]


class Tables:
    """Names of the tables the engine reads and writes."""
    USERS = "users"
    SETTINGS = "settings"
    EXPENSES = "expenses"
    FIXED_EXPENSES = "fixed_expenses"
    FIXED_INCOMES = "fixed_incomes"
    CASH_MOVEMENTS = "cash_movements"
    CREDIT_CARDS = "credit_cards"
    INVESTMENTS = "investments"
    FIXED_EXPENSE_PAYMENTS = "fixed_expense_payments"
    FIXED_INCOME_RECEIPTS = "fixed_income_receipts"
    CREDIT_CARD_PAYMENTS = "credit_card_payments"
    AUDIT_EVENTS = "audit_events"


# Settlement rows are unique per (item, month, year). The hosted store must
# carry matching UNIQUE constraints; the in-memory store enforces these.
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    Tables.FIXED_EXPENSE_PAYMENTS: ("fixed_expense_id", "month", "year"),
    Tables.FIXED_INCOME_RECEIPTS: ("fixed_income_id", "month", "year"),
    Tables.CREDIT_CARD_PAYMENTS: ("credit_card_id", "month", "year"),
}


class RemoteStoreInterface(ABC):
    """
    Abstract interface for the persistence/auth service.

    Any backend (Supabase, Postgres, in-memory) must implement these methods.
    """

    @abstractmethod
    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        """
        Bulk read of a table.

        Args:
            table: Table name
            filters: Optional equality filters {column: value}

        Returns:
            List of matching rows

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """
        Insert a row.

        Returns:
            The inserted row, including server-assigned id/timestamps

        Raises:
            DuplicateError: If a unique constraint is violated
            StorageError: If the insert fails
        """
        pass

    @abstractmethod
    async def update(self, table: str, row_id: str, patch: Row) -> None:
        """
        Update columns of an existing row.

        Raises:
            NotFoundError: If the row doesn't exist
            StorageError: If the update fails
        """
        pass

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """
        Delete a row by id.

        Raises:
            StorageError: If the delete fails
        """
        pass

    @abstractmethod
    async def current_user_id(self) -> Optional[str]:
        """
        Identify the acting user.

        Returns:
            The authenticated user's id, or None when there is no session

        Raises:
            AuthenticationError: If the identity lookup itself fails
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class AuthenticationError(StorageError):
    """The acting user could not be identified."""
    pass
