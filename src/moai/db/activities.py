"""
Moai - Activity log store.

Writes logged workouts to `activity_logs` and provides the aggregate reads
(counts, weekly summaries, tier status) the progression machines sync from.
"""

import logging
from datetime import date, datetime, timedelta, timezone

from moai.db.adapter import DatabaseAdapter
from moai.db.errors import StoreError
from moai.tiers import (
    StreakData,
    UserTierStatus,
    WeekSummary,
    calculate_streak_data,
    calculate_user_tier_status,
    group_activities_by_week,
)

logger = logging.getLogger(__name__)

ACTIVITY_LOGS_TABLE = "activity_logs"


class ActivityStore:
    """Activity log data access bound to an explicitly constructed client."""

    def __init__(self, client: DatabaseAdapter):
        self._client = client

    async def create_activity(
        self,
        user_id: str,
        activity_type: str,
        duration_minutes: int = 0,
        notes: str = "",
        moai_id: str | None = None,
        logged_at: datetime | None = None,
    ) -> dict:
        """Insert an activity log row and return it."""
        row = {
            "profile_id": user_id,
            "activity_type": activity_type,
            "duration_minutes": duration_minutes,
            "notes": notes,
            "logged_at": (logged_at or datetime.now(timezone.utc)).isoformat(),
        }
        if moai_id:
            row["moai_id"] = moai_id

        try:
            response = self._client.table(ACTIVITY_LOGS_TABLE).insert(row).execute()
        except Exception as e:
            raise StoreError(f"Failed to log activity for {user_id}: {e}", "create_activity") from e

        logger.info(f"Logged {activity_type} activity ({duration_minutes} min) for user {user_id}")
        return response.data[0] if response.data else row

    async def count_activities(self, user_id: str) -> int:
        """Total number of activities the user has logged."""
        try:
            response = (
                self._client.table(ACTIVITY_LOGS_TABLE)
                .select("id", count="exact")
                .eq("profile_id", user_id)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to count activities for {user_id}: {e}", "count_activities") from e

        if response.count is not None:
            return response.count
        return len(response.data or [])

    async def get_activities_since(self, user_id: str, since: datetime) -> list[dict]:
        """Activity rows created on or after `since`, most recent first."""
        try:
            response = (
                self._client.table(ACTIVITY_LOGS_TABLE)
                .select("created_at, duration_minutes")
                .eq("profile_id", user_id)
                .gte("created_at", since.isoformat())
                .order("created_at", desc=True)
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to fetch activity history for {user_id}: {e}", "get_activities_since") from e
        return response.data or []

    async def get_weekly_summaries(self, user_id: str, weeks: int = 8) -> list[WeekSummary]:
        """Per-week activity counts for the last `weeks` weeks, most recent first."""
        since = datetime.now(timezone.utc) - timedelta(weeks=weeks)
        activities = await self.get_activities_since(user_id, since)
        return group_activities_by_week(activities)

    async def get_user_tier_status(self, user_id: str, weeks: int = 8, today: date | None = None) -> UserTierStatus:
        """Tier status derived from the user's recent weekly activity."""
        weekly = await self.get_weekly_summaries(user_id, weeks)
        return calculate_user_tier_status(user_id, weekly, today=today)

    async def get_user_streak_data(self, user_id: str, weeks: int = 12) -> StreakData:
        weekly = await self.get_weekly_summaries(user_id, weeks)
        return calculate_streak_data(user_id, weekly)
