"""Services package."""

from household_finance.services.storage import (
    AuthenticationError,
    ConnectionError,
    DuplicateError,
    InMemoryRemoteStore,
    NotFoundError,
    RemoteStoreInterface,
    StorageError,
    SupabaseClient,
    SupabaseRemoteStore,
    Tables,
)

__all__ = [
    "AuthenticationError",
    "ConnectionError",
    "DuplicateError",
    "InMemoryRemoteStore",
    "NotFoundError",
    "RemoteStoreInterface",
    "StorageError",
    "SupabaseClient",
    "SupabaseRemoteStore",
    "Tables",
]
