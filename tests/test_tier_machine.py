"""
Tests for the tier progression machine and tracker.

Delayed transitions run on ManualScheduler so timeouts are deterministic.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from moai.config import MoaiSettings
from moai.machines.base import Interpreter
from moai.machines.scheduler import ManualScheduler
from moai.machines.tier import (
    TierProgressionContext,
    TierProgressionTracker,
    create_tier_machine,
    should_promote_tier,
    week_target_met,
)
from moai.tiers import TIER_REQUIREMENTS, TierLevel, UserTierStatus


def eligible_status(**overrides) -> UserTierStatus:
    values = dict(
        user_id="user-1",
        current_tier=TierLevel.BRONZE,
        consecutive_weeks=2,
        current_week_progress=4,
        current_week_commitment=3,
        next_tier_requirements=TIER_REQUIREMENTS[TierLevel.SILVER],
        can_promote=True,
    )
    values.update(overrides)
    return UserTierStatus(**values)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def interpreter(scheduler):
    return Interpreter(create_tier_machine(), scheduler=scheduler).start()


def reach_celebrating(interpreter):
    interpreter.send("UPDATE_STATUS", tier_status=eligible_status())
    interpreter.send("ACTIVITY_LOGGED", activities_this_week=4)
    assert interpreter.state.value == "promoting"
    interpreter.send("PROMOTE_TIER", new_tier=TierLevel.SILVER)
    assert interpreter.state.value == "celebrating"


class TestGuards:
    def test_should_promote(self):
        assert should_promote_tier(TierProgressionContext(promotion_eligible=True))
        assert not should_promote_tier(TierProgressionContext(promotion_eligible=True, celebration_shown=True))
        assert not should_promote_tier(TierProgressionContext())

    def test_week_target(self):
        assert week_target_met(TierProgressionContext(current_week_progress=3, weekly_target=3))
        assert not week_target_met(TierProgressionContext(current_week_progress=2, weekly_target=3))


class TestTierMachine:
    """Test tier progression transitions."""

    def test_starts_tracking(self, interpreter):
        assert interpreter.state.value == "tracking"
        assert interpreter.state.context.current_tier == TierLevel.BRONZE

    def test_activity_below_target_returns_to_tracking(self, interpreter):
        interpreter.send("ACTIVITY_LOGGED", activities_this_week=1)
        assert interpreter.state.value == "tracking"
        assert interpreter.state.context.current_week_progress == 1

    def test_week_target_met(self, interpreter, scheduler):
        interpreter.send("ACTIVITY_LOGGED", activities_this_week=3)
        assert interpreter.state.value == "weekCompleted"

        scheduler.advance(1000)
        assert interpreter.state.value == "tracking"

    def test_check_promotion_from_week_completed(self, interpreter, scheduler):
        interpreter.send("ACTIVITY_LOGGED", activities_this_week=3)
        interpreter.send("CHECK_PROMOTION")
        # Still meets target, no promotion: back to weekCompleted with a fresh timer
        assert interpreter.state.value == "weekCompleted"
        assert scheduler.pending == 1

    def test_week_completion_streak(self, interpreter):
        interpreter.send("WEEK_COMPLETED", week_activities=4, week_target=3)
        assert interpreter.state.context.consecutive_weeks == 1
        assert interpreter.state.context.current_week_progress == 0
        assert interpreter.state.value == "tracking"

        interpreter.send("WEEK_COMPLETED", week_activities=4, week_target=3)
        interpreter.send("WEEK_COMPLETED", week_activities=1, week_target=3)
        assert interpreter.state.context.consecutive_weeks == 0

    def test_update_status(self, interpreter):
        interpreter.send("UPDATE_STATUS", tier_status=eligible_status(current_week_commitment=4))
        ctx = interpreter.state.context
        assert interpreter.state.value == "tracking"
        assert ctx.promotion_eligible is True
        assert ctx.weekly_target == 4
        assert ctx.consecutive_weeks == 2

    def test_promotion_flow(self, interpreter):
        interpreter.send("UPDATE_STATUS", tier_status=eligible_status())
        interpreter.send("ACTIVITY_LOGGED", activities_this_week=4)
        assert interpreter.state.value == "promoting"
        assert interpreter.state.context.new_tier == TierLevel.SILVER

        interpreter.send("PROMOTE_TIER", new_tier=TierLevel.SILVER)
        ctx = interpreter.state.context
        assert interpreter.state.value == "celebrating"
        assert ctx.current_tier == TierLevel.SILVER
        assert ctx.celebration_shown is True
        assert ctx.promotion_eligible is False

    def test_celebration_viewed(self, interpreter, scheduler):
        reach_celebrating(interpreter)
        interpreter.send("CELEBRATION_VIEWED")

        ctx = interpreter.state.context
        assert interpreter.state.value == "tracking"
        assert ctx.new_tier is None
        assert ctx.celebration_shown is False
        assert scheduler.pending == 0

    def test_celebration_times_out(self, interpreter, scheduler):
        """With no CELEBRATION_VIEWED the celebration dismisses itself and clears the new tier."""
        reach_celebrating(interpreter)

        scheduler.advance(9_999)
        assert interpreter.state.value == "celebrating"

        scheduler.advance(1)
        ctx = interpreter.state.context
        assert interpreter.state.value == "tracking"
        assert ctx.new_tier is None
        assert ctx.celebration_shown is False
        assert ctx.current_tier == TierLevel.SILVER

    def test_custom_timeouts(self, scheduler):
        interpreter = Interpreter(
            create_tier_machine(celebration_timeout_ms=50, week_completed_timeout_ms=10),
            scheduler=scheduler,
        ).start()
        reach_celebrating(interpreter)
        scheduler.advance(50)
        assert interpreter.state.value == "tracking"

    def test_promote_without_target_ignored(self, interpreter):
        interpreter.send("UPDATE_STATUS", tier_status=eligible_status(next_tier_requirements=None))
        interpreter.send("ACTIVITY_LOGGED", activities_this_week=4)
        assert interpreter.state.value == "promoting"
        interpreter.send("PROMOTE_TIER")
        assert interpreter.state.value == "promoting"

    def test_error_and_reset(self, interpreter):
        interpreter.send("UPDATE_STATUS", tier_status=eligible_status(current_tier=TierLevel.GOLD))
        interpreter.send("REPORT_ERROR", error="sync failed")
        assert interpreter.state.value == "error"
        assert interpreter.state.context.error == "sync failed"

        interpreter.send("ACTIVITY_LOGGED", activities_this_week=5)
        assert interpreter.state.value == "error"

        interpreter.send("RESET_PROGRESS")
        ctx = interpreter.state.context
        assert interpreter.state.value == "tracking"
        assert ctx.current_tier == TierLevel.BRONZE
        assert ctx.weekly_target == 3
        assert ctx.error is None

    def test_error_cancels_pending_timer(self, interpreter, scheduler):
        reach_celebrating(interpreter)
        interpreter.send("REPORT_ERROR")
        assert scheduler.pending == 0
        scheduler.advance(20_000)
        assert interpreter.state.value == "error"


class TestTierProgressionTracker:
    """Test the hosted tracker."""

    def test_sync_pushes_status(self):
        activities = MagicMock()
        activities.get_user_tier_status = AsyncMock(return_value=eligible_status(current_week_progress=1))
        tracker = TierProgressionTracker(activities, "user-1", scheduler=ManualScheduler()).start()

        asyncio.run(tracker.sync())

        activities.get_user_tier_status.assert_awaited_once_with("user-1", weeks=8)
        assert tracker.is_tracking
        assert tracker.context.promotion_eligible is True

    def test_sync_failure_reports_error(self):
        activities = MagicMock()
        activities.get_user_tier_status = AsyncMock(side_effect=RuntimeError("timeout"))
        tracker = TierProgressionTracker(activities, "user-1", scheduler=ManualScheduler()).start()

        asyncio.run(tracker.sync())

        assert tracker.has_error
        assert tracker.context.error == "timeout"

    def test_settings_timeouts(self):
        scheduler = ManualScheduler()
        settings = MoaiSettings(tier_celebration_timeout_ms=100, tier_history_weeks=4)
        activities = MagicMock()
        activities.get_user_tier_status = AsyncMock(return_value=eligible_status())
        tracker = TierProgressionTracker(activities, "user-1", scheduler=scheduler, settings=settings).start()

        asyncio.run(tracker.sync())
        tracker.activity_logged(4)
        assert tracker.is_promoting
        tracker.promote()
        assert tracker.is_celebrating

        scheduler.advance(100)
        assert tracker.is_tracking
        activities.get_user_tier_status.assert_awaited_once_with("user-1", weeks=4)

    def test_week_completed_uses_context_target(self):
        with TierProgressionTracker(MagicMock(), "user-1", scheduler=ManualScheduler()) as tracker:
            tracker.week_completed(3)
            assert tracker.context.consecutive_weeks == 1
