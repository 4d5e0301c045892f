"""
Moai - Tier rules.

Users earn a tier by logging a minimum number of activities per week for a
number of consecutive weeks. Weeks start on Sunday. Weekly data is always
ordered most recent first.

    bronze   3+ activities/week, 1 week
    silver   4+ activities/week, 2 consecutive weeks
    gold     5+ activities/week, 3 consecutive weeks
    elite    6+ activities/week, 4 consecutive weeks
"""

from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class TierLevel(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    ELITE = "elite"


class TierRequirements(BaseModel):
    level: TierLevel
    min_weekly_activities: int
    min_weekly_commitment: int
    consecutive_weeks_required: int
    description: str


TIER_REQUIREMENTS: dict[TierLevel, TierRequirements] = {
    TierLevel.BRONZE: TierRequirements(
        level=TierLevel.BRONZE,
        min_weekly_activities=3,
        min_weekly_commitment=3,
        consecutive_weeks_required=1,
        description="Complete 3+ activities per week",
    ),
    TierLevel.SILVER: TierRequirements(
        level=TierLevel.SILVER,
        min_weekly_activities=4,
        min_weekly_commitment=4,
        consecutive_weeks_required=2,
        description="Complete 4+ activities for 2 consecutive weeks",
    ),
    TierLevel.GOLD: TierRequirements(
        level=TierLevel.GOLD,
        min_weekly_activities=5,
        min_weekly_commitment=5,
        consecutive_weeks_required=3,
        description="Complete 5+ activities for 3 consecutive weeks",
    ),
    TierLevel.ELITE: TierRequirements(
        level=TierLevel.ELITE,
        min_weekly_activities=6,
        min_weekly_commitment=6,
        consecutive_weeks_required=4,
        description="Complete 6+ activities for 4 consecutive weeks",
    ),
}

TIER_ORDER = [TierLevel.BRONZE, TierLevel.SILVER, TierLevel.GOLD, TierLevel.ELITE]

# Activities per week that keep a streak alive
STREAK_THRESHOLD = 3


class WeekSummary(BaseModel):
    week_start: date
    activities_count: int = 0
    total_duration: int = 0
    last_activity_at: datetime | None = None


class UserTierStatus(BaseModel):
    user_id: str
    current_tier: TierLevel = TierLevel.BRONZE
    consecutive_weeks: int = 0
    current_week_progress: int = 0
    current_week_commitment: int = 3
    weekly_activities: int = 0
    next_tier_requirements: TierRequirements | None = None
    can_promote: bool = False
    last_updated: datetime = Field(default_factory=datetime.now)


class WeeklyStreak(BaseModel):
    week_start: date
    completed: bool
    activities_count: int


class StreakData(BaseModel):
    user_id: str
    current_streak: int = 0
    longest_streak: int = 0
    last_activity_date: datetime | None = None
    weekly_streaks: list[WeeklyStreak] = Field(default_factory=list)


# =============================================================================
# Weekly grouping
# =============================================================================


def week_start(day: date | datetime) -> date:
    """Sunday on or before the given day."""
    if isinstance(day, datetime):
        day = day.date()
    return day - timedelta(days=(day.weekday() + 1) % 7)


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def group_activities_by_week(activities: list[dict]) -> list[WeekSummary]:
    """
    Bucket activity_logs rows into Sunday-start weeks, most recent first.

    Rows without a parseable created_at are skipped.
    """
    weeks: dict[date, WeekSummary] = {}

    for activity in activities:
        created_at = _parse_timestamp(activity.get("created_at"))
        if created_at is None:
            continue

        key = week_start(created_at)
        summary = weeks.setdefault(key, WeekSummary(week_start=key))
        summary.activities_count += 1
        summary.total_duration += int(activity.get("duration_minutes") or 0)
        if summary.last_activity_at is None or created_at > summary.last_activity_at:
            summary.last_activity_at = created_at

    return sorted(weeks.values(), key=lambda w: w.week_start, reverse=True)


# =============================================================================
# Tier calculations
# =============================================================================


def calculate_consecutive_weeks(weekly: list[WeekSummary], tier: TierLevel) -> int:
    """Count weeks from the most recent backwards that meet the tier minimum."""
    minimum = TIER_REQUIREMENTS[tier].min_weekly_activities
    count = 0
    for week in weekly:
        if week.activities_count < minimum:
            break
        count += 1
    return count


def determine_tier(weekly: list[WeekSummary]) -> TierLevel:
    """Highest tier whose consecutive-week requirement is met."""
    for tier in reversed(TIER_ORDER):
        required = TIER_REQUIREMENTS[tier].consecutive_weeks_required
        if calculate_consecutive_weeks(weekly, tier) >= required:
            return tier
    return TierLevel.BRONZE


def next_tier(tier: TierLevel) -> TierLevel | None:
    index = TIER_ORDER.index(tier)
    return TIER_ORDER[index + 1] if index + 1 < len(TIER_ORDER) else None


def can_promote_to(weekly: list[WeekSummary], tier: TierLevel) -> bool:
    required = TIER_REQUIREMENTS[tier].consecutive_weeks_required
    return calculate_consecutive_weeks(weekly, tier) >= required


def calculate_user_tier_status(
    user_id: str,
    weekly: list[WeekSummary],
    today: date | None = None,
) -> UserTierStatus:
    """
    Derive a user's tier status from their weekly activity summaries.

    The current week's progress only counts when the most recent summary
    is for the week containing `today`.
    """
    current_tier = determine_tier(weekly)
    upcoming = next_tier(current_tier)

    this_week = week_start(today or date.today())
    current_progress = 0
    if weekly and weekly[0].week_start == this_week:
        current_progress = weekly[0].activities_count

    return UserTierStatus(
        user_id=user_id,
        current_tier=current_tier,
        consecutive_weeks=calculate_consecutive_weeks(weekly, current_tier),
        current_week_progress=current_progress,
        current_week_commitment=TIER_REQUIREMENTS[current_tier].min_weekly_commitment,
        weekly_activities=current_progress,
        next_tier_requirements=TIER_REQUIREMENTS[upcoming] if upcoming else None,
        can_promote=can_promote_to(weekly, upcoming) if upcoming else False,
    )


def calculate_streak_data(user_id: str, weekly: list[WeekSummary]) -> StreakData:
    """Current and longest runs of weeks with STREAK_THRESHOLD+ activities."""
    current = 0
    for week in weekly:
        if week.activities_count < STREAK_THRESHOLD:
            break
        current += 1

    longest = 0
    run = 0
    for week in reversed(weekly):  # chronological
        if week.activities_count >= STREAK_THRESHOLD:
            run += 1
            longest = max(longest, run)
        else:
            run = 0

    return StreakData(
        user_id=user_id,
        current_streak=current,
        longest_streak=longest,
        last_activity_date=weekly[0].last_activity_at if weekly else None,
        weekly_streaks=[
            WeeklyStreak(
                week_start=w.week_start,
                completed=w.activities_count >= STREAK_THRESHOLD,
                activities_count=w.activities_count,
            )
            for w in weekly
        ],
    )
