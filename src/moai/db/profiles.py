"""
Moai - Profile store.

Reads and writes rows in the `profiles` table. Rows are normalized into
`Profile` on the way out; nothing past this module sees raw column values.
"""

import logging
from datetime import datetime, timezone

from moai.db.adapter import DatabaseAdapter
from moai.db.errors import ProfileStoreError
from moai.models.profile import Profile

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProfileStore:
    """Profile data access bound to an explicitly constructed client."""

    def __init__(self, client: DatabaseAdapter):
        self._client = client

    async def fetch_profile(self, user_id: str) -> Profile | None:
        """
        Get a user's profile.

        Returns None when no row exists. Raises ProfileStoreError when the
        query itself fails.
        """
        try:
            response = (
                self._client.table(PROFILES_TABLE)
                .select("*")
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
        except Exception as e:
            raise ProfileStoreError(f"Failed to fetch profile {user_id}: {e}", "fetch_profile") from e

        # maybe_single() yields no response at all when the row is missing
        if response is None or not response.data:
            logger.info(f"No profile found for user {user_id}")
            return None

        return Profile.from_row(response.data)

    async def update_profile(self, user_id: str, updates: dict) -> Profile | None:
        """Apply column updates and return the updated profile."""
        data = {**updates, "updated_at": _now()}

        try:
            response = (
                self._client.table(PROFILES_TABLE)
                .update(data)
                .eq("id", user_id)
                .execute()
            )
        except Exception as e:
            raise ProfileStoreError(f"Failed to update profile {user_id}: {e}", "update_profile") from e

        if not response.data:
            return None
        return Profile.from_row(response.data[0])

