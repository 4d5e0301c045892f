"""
Database Adapter Protocol.

The stores are written against this interface rather than the concrete
Supabase client so they can be constructed with any object exposing the
PostgREST query builder pattern: table() returns a query builder. The
Supabase `Client` satisfies it as-is, and tests pass a MagicMock.
"""

from typing import Any, Protocol, runtime_checkable


@runtime_checkable
class DatabaseAdapter(Protocol):
    """
    Abstract database access for the Moai stores.

    table() must return a builder supporting the PostgREST fluent API:
    .select(), .insert(), .update(), .upsert(), .eq(), .neq(), .gte(),
    .in_(), .order(), .limit(), .maybe_single(), .execute().
    """

    def table(self, name: str) -> Any:
        """Return a query builder for the given table."""
        ...
