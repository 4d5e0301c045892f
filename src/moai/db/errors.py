"""
Moai - Data access errors.

Stores wrap Supabase/PostgREST exceptions in these so callers can handle
"the store failed" without importing the client library's exception types.
"""


class StoreError(Exception):
    """A read or write against the backing store failed."""

    def __init__(self, message: str, operation: str = ""):
        super().__init__(message)
        self.operation = operation


class ProfileStoreError(StoreError):
    """A profiles table operation failed."""
