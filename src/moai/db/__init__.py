"""
Moai - Database access.

Stores over the Supabase tables the core reads and writes.
"""

from moai.db.activities import ActivityStore
from moai.db.buddies import BuddyStore
from moai.db.client import AppResources, create_store_client, open_resources
from moai.db.errors import ProfileStoreError, StoreError
from moai.db.profiles import ProfileStore

__all__ = [
    "AppResources",
    "create_store_client",
    "open_resources",
    "ProfileStore",
    "ActivityStore",
    "BuddyStore",
    "StoreError",
    "ProfileStoreError",
]
