"""
Moai - Supabase client construction.

There is no module-level client. Entry points build one with
create_store_client() at startup and hand it to the stores through
AppResources, which also marks the teardown boundary.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

from supabase import Client, create_client

from moai.config import MoaiSettings
from moai.db.activities import ActivityStore
from moai.db.adapter import DatabaseAdapter
from moai.db.buddies import BuddyStore
from moai.db.profiles import ProfileStore

logger = logging.getLogger(__name__)


def create_store_client(settings: MoaiSettings, service_role: bool = True) -> Client:
    """
    Build a Supabase client from settings.

    The service-role key bypasses row-level security and is what the API
    uses after validating the caller's JWT itself.
    """
    key = settings.supabase_service_role_key if service_role else settings.supabase_anon_key
    if not settings.supabase_url or not key:
        raise ValueError("SUPABASE_URL and a Supabase key must be configured")
    return create_client(settings.supabase_url, key)


@dataclass
class AppResources:
    """Stores sharing one client, owned by a single entry point."""

    client: DatabaseAdapter
    profiles: ProfileStore = field(init=False)
    activities: ActivityStore = field(init=False)
    buddies: BuddyStore = field(init=False)
    closed: bool = field(default=False, init=False)

    def __post_init__(self):
        self.profiles = ProfileStore(self.client)
        self.activities = ActivityStore(self.client)
        self.buddies = BuddyStore(self.client)

    @classmethod
    def from_settings(cls, settings: MoaiSettings) -> "AppResources":
        return cls(client=create_store_client(settings))

    def close(self) -> None:
        """Sign out any session held by the client and mark resources closed."""
        if self.closed:
            return
        auth = getattr(self.client, "auth", None)
        if auth is not None:
            try:
                auth.sign_out()
            except Exception as e:
                logger.warning(f"Supabase sign-out during teardown failed: {e}")
        self.closed = True
        logger.info("Store resources closed")


@contextmanager
def open_resources(settings: MoaiSettings) -> Iterator[AppResources]:
    """Build resources for the duration of a block (CLI commands, scripts)."""
    resources = AppResources.from_settings(settings)
    try:
        yield resources
    finally:
        resources.close()
