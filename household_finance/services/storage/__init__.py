"""
Storage Services Package

Provides the abstract remote store, the row/entity mapping, and concrete
implementations for Supabase and for in-process memory.
"""

from household_finance.services.storage.interface import (
    UNIQUE_KEYS,
    AuthenticationError,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    RemoteStoreInterface,
    Row,
    StorageError,
    Tables,
)
from household_finance.services.storage.memory import InMemoryRemoteStore
from household_finance.services.storage.supabase_store import (
    SupabaseClient,
    SupabaseRemoteStore,
)

__all__ = [
    # Interface
    "RemoteStoreInterface",
    "Row",
    "Tables",
    "UNIQUE_KEYS",
    # Exceptions
    "AuthenticationError",
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryRemoteStore",
    "SupabaseClient",
    "SupabaseRemoteStore",
]
