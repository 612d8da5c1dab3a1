"""
Supabase Remote Store Implementation

DESIGN DECISION: The hosted backend is Supabase (Postgres behind PostgREST,
plus GoTrue auth) because:
1. Row-level CRUD is all the engine needs
2. Auth and data share one client and one session
3. Unique constraints give us a server-side settlement guard

TRADEOFFS:
- No multi-statement transactions through PostgREST (the reconciliation
  engine compensates failed writes instead)
- The client is synchronous; calls block the event loop briefly, which is
  fine for one user action at a time

The implementation follows the abstract interface, so the engine never
imports supabase directly.
"""

from typing import Any, Optional

import structlog
from supabase import Client, create_client
from tenacity import retry, stop_after_attempt, wait_exponential

from household_finance.config import SupabaseSettings, get_settings
from household_finance.services.storage.interface import (
    AuthenticationError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RemoteStoreInterface,
    Row,
    StorageError,
)


# Postgres error code for unique_violation
UNIQUE_VIOLATION = "23505"


logger = structlog.get_logger(__name__)


def _storage_error(operation: str, table: str, error: Exception) -> StorageError:
    """Translate a PostgREST failure into our storage hierarchy."""
    if getattr(error, "code", None) == UNIQUE_VIOLATION:
        return DuplicateError(f"Duplicate row in {table}: {error}")
    return StorageError(f"Failed to {operation} {table}: {error}")


class SupabaseClient:
    """
    Low-level Supabase client wrapper.

    Handles connection setup (with retry) and the auth session.
    """

    def __init__(self, settings: Optional[SupabaseSettings] = None):
        self._client: Optional[Client] = None
        self._settings = settings

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> Client:
        """Establish the Supabase client."""
        if self._client is None:
            settings = self._settings or get_settings().supabase
            try:
                self._client = create_client(settings.url, settings.key)
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Supabase: {e}")
        return self._client

    def table(self, name: str):
        """Get a query builder for a table."""
        return self.connect().table(name)

    def sign_in(self, email: str, password: str) -> str:
        """
        Sign in with email/password and return the user id.

        The session is kept by the client for subsequent calls.
        """
        try:
            response = self.connect().auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except Exception as e:
            raise AuthenticationError(f"Sign in failed: {e}")
        if response.user is None:
            raise AuthenticationError("Sign in returned no user")
        return response.user.id

    def sign_out(self) -> None:
        self.connect().auth.sign_out()

    def user_id(self) -> Optional[str]:
        """Id of the signed-in user, or None without a session."""
        try:
            response = self.connect().auth.get_user()
        except Exception as e:
            raise AuthenticationError(f"Failed to fetch the current user: {e}")
        if response is None or response.user is None:
            return None
        return response.user.id


class SupabaseRemoteStore(RemoteStoreInterface):
    """
    Supabase implementation of the remote store.

    Each table holds one entity per row in the flat column shape produced
    by the mapping module.
    """

    def __init__(self, client: Optional[SupabaseClient] = None):
        self._client = client or SupabaseClient()

    async def query(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
    ) -> list[Row]:
        try:
            request = self._client.table(table).select("*")
            for column, value in (filters or {}).items():
                request = request.eq(column, value)
            response = request.execute()
            return list(response.data or [])
        except ConnectionError:
            raise
        except Exception as e:
            raise _storage_error("query", table, e)

    async def insert(self, table: str, row: Row) -> Row:
        try:
            response = self._client.table(table).insert(row).execute()
        except ConnectionError:
            raise
        except Exception as e:
            raise _storage_error("insert into", table, e)

        if not response.data:
            raise StorageError(f"Insert into {table} returned no row")
        logger.debug("row_inserted", table=table, row_id=response.data[0].get("id"))
        return response.data[0]

    async def update(self, table: str, row_id: str, patch: Row) -> None:
        try:
            response = (
                self._client.table(table)
                .update(patch)
                .eq("id", row_id)
                .execute()
            )
        except ConnectionError:
            raise
        except Exception as e:
            raise _storage_error("update", table, e)

        if not response.data:
            raise NotFoundError(f"{table} row not found: {row_id}")

    async def delete(self, table: str, row_id: str) -> None:
        try:
            self._client.table(table).delete().eq("id", row_id).execute()
        except ConnectionError:
            raise
        except Exception as e:
            raise _storage_error("delete from", table, e)

    async def current_user_id(self) -> Optional[str]:
        return self._client.user_id()
