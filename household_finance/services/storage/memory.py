"""
In-Memory Remote Store

A dict-backed implementation of RemoteStoreInterface. Used by the test
suite and for running the engine without a hosted backend.

It behaves like the hosted store where the engine depends on it:
- ids and created_at are assigned on insert when missing
- settlement tables reject a second row for the same (item, month, year)
- rows handed out are copies, so callers can never mutate stored data
"""

import copy
from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

from household_finance.services.storage.interface import (
    UNIQUE_KEYS,
    DuplicateError,
    NotFoundError,
    RemoteStoreInterface,
    Row,
)


class InMemoryRemoteStore(RemoteStoreInterface):
    """Remote store kept in process memory."""

    def __init__(
        self,
        user_id: Optional[str] = None,
        tables: Optional[dict[str, list[Row]]] = None,
    ):
        """
        Args:
            user_id: Id reported as the acting user (None = no session)
            tables: Optional initial rows per table
        """
        self._user_id = user_id
        self._tables: dict[str, list[Row]] = {
            name: [copy.deepcopy(row) for row in rows]
            for name, rows in (tables or {}).items()
        }

    def rows(self, table: str) -> list[Row]:
        """Copies of every row currently stored in a table."""
        return copy.deepcopy(self._tables.get(table, []))

    def sign_in(self, user_id: Optional[str]) -> None:
        self._user_id = user_id

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        rows = self._tables.get(table, [])
        if filters:
            rows = [
                row for row in rows
                if all(row.get(column) == value for column, value in filters.items())
            ]
        return copy.deepcopy(rows)

    async def insert(self, table: str, row: Row) -> Row:
        stored = copy.deepcopy(row)
        if not stored.get("id"):
            stored["id"] = str(uuid4())
        stored.setdefault("created_at", datetime.now(timezone.utc).isoformat())

        existing = self._tables.setdefault(table, [])
        if any(other["id"] == stored["id"] for other in existing):
            raise DuplicateError(f"Duplicate id in {table}: {stored['id']}")

        unique_key = UNIQUE_KEYS.get(table)
        if unique_key:
            key = tuple(stored.get(column) for column in unique_key)
            for other in existing:
                if tuple(other.get(column) for column in unique_key) == key:
                    raise DuplicateError(
                        f"Duplicate key in {table}: {dict(zip(unique_key, key))}"
                    )

        existing.append(stored)
        return copy.deepcopy(stored)

    async def update(self, table: str, row_id: str, patch: Row) -> None:
        for row in self._tables.get(table, []):
            if row["id"] == row_id:
                row.update(copy.deepcopy(patch))
                return
        raise NotFoundError(f"{table} row not found: {row_id}")

    async def delete(self, table: str, row_id: str) -> None:
        rows = self._tables.get(table, [])
        self._tables[table] = [row for row in rows if row["id"] != row_id]

    async def current_user_id(self) -> Optional[str]:
        return self._user_id
