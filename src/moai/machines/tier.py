"""
Moai - Tier progression machine.

Tracks weekly activity against the tier's weekly target and walks a user
through promotion and its celebration:

    tracking --ACTIVITY_LOGGED / WEEK_COMPLETED--> evaluating
    evaluating (eventless) -> promoting | weekCompleted | tracking
    weekCompleted --after 1s--> tracking
    promoting --PROMOTE_TIER--> celebrating
    celebrating --CELEBRATION_VIEWED or after 10s--> tracking

REPORT_ERROR moves any state to `error`; RESET_PROGRESS leaves it with a
fresh context.
"""

import logging
from dataclasses import dataclass
from typing import Any

from moai.config import MoaiSettings
from moai.db.activities import ActivityStore
from moai.machines.base import Delayed, Event, Interpreter, Machine, MachineState, StateNode, Transition
from moai.machines.scheduler import Scheduler
from moai.tiers import TierLevel, UserTierStatus

logger = logging.getLogger(__name__)

CELEBRATION_TIMEOUT_MS = 10_000
WEEK_COMPLETED_TIMEOUT_MS = 1_000
DEFAULT_WEEKLY_TARGET = 3


@dataclass(frozen=True)
class TierProgressionContext:
    current_tier: TierLevel = TierLevel.BRONZE
    consecutive_weeks: int = 0
    current_week_progress: int = 0
    weekly_target: int = DEFAULT_WEEKLY_TARGET
    new_tier: TierLevel | None = None
    celebration_shown: bool = False
    promotion_eligible: bool = False
    user_tier_status: UserTierStatus | None = None
    error: str | None = None


# =============================================================================
# Guards
# =============================================================================


def should_promote_tier(ctx: TierProgressionContext, event: Event = None) -> bool:
    return ctx.promotion_eligible and not ctx.celebration_shown


def week_target_met(ctx: TierProgressionContext, event: Event = None) -> bool:
    return ctx.current_week_progress >= ctx.weekly_target


# =============================================================================
# Actions
# =============================================================================


def _update_week_progress(ctx: TierProgressionContext, event: Event) -> dict:
    return {"current_week_progress": int(event.get("activities_this_week", 0))}


def _process_week_completion(ctx: TierProgressionContext, event: Event) -> dict:
    target = event.get("week_target", ctx.weekly_target)
    met = event.get("week_activities", 0) >= target
    return {
        "consecutive_weeks": ctx.consecutive_weeks + 1 if met else 0,
        "current_week_progress": 0,
    }


def _update_tier_status(ctx: TierProgressionContext, event: Event) -> dict:
    status = event.get("tier_status")
    if isinstance(status, dict):
        status = UserTierStatus.model_validate(status)
    return {
        "user_tier_status": status,
        "current_tier": status.current_tier,
        "consecutive_weeks": status.consecutive_weeks,
        "current_week_progress": status.current_week_progress,
        "weekly_target": status.current_week_commitment,
        "promotion_eligible": status.can_promote,
    }


def _initiate_promotion(ctx: TierProgressionContext, event: Event) -> dict | None:
    status = ctx.user_tier_status
    if status is not None and status.next_tier_requirements is not None:
        return {"new_tier": status.next_tier_requirements.level}
    return None


def _has_promotion_target(ctx: TierProgressionContext, event: Event) -> bool:
    return bool(event.get("new_tier") or ctx.new_tier)


def _promote_tier(ctx: TierProgressionContext, event: Event) -> dict:
    tier = TierLevel(event.get("new_tier") or ctx.new_tier)
    # Eligibility is consumed by the promotion; the next UPDATE_STATUS re-derives it
    return {"current_tier": tier, "new_tier": tier, "promotion_eligible": False}


def _show_celebration(ctx: TierProgressionContext, event: Event) -> dict:
    return {"celebration_shown": True}


def _celebration_viewed(ctx: TierProgressionContext, event: Event) -> dict:
    return {"celebration_shown": False, "new_tier": None}


def _record_error(ctx: TierProgressionContext, event: Event) -> dict:
    return {"error": event.get("error") or "Tier progression failed"}


def _reset(ctx: TierProgressionContext, event: Event) -> dict:
    return {
        "current_tier": TierLevel.BRONZE,
        "consecutive_weeks": 0,
        "current_week_progress": 0,
        "weekly_target": DEFAULT_WEEKLY_TARGET,
        "new_tier": None,
        "celebration_shown": False,
        "promotion_eligible": False,
        "error": None,
    }


# =============================================================================
# Machine
# =============================================================================


def create_tier_machine(
    context: TierProgressionContext | None = None,
    celebration_timeout_ms: int = CELEBRATION_TIMEOUT_MS,
    week_completed_timeout_ms: int = WEEK_COMPLETED_TIMEOUT_MS,
) -> Machine:
    return Machine(
        id="tierProgression",
        initial="tracking",
        context=context or TierProgressionContext(),
        on={
            "REPORT_ERROR": Transition(target="error", actions=(_record_error,)),
        },
        states={
            "tracking": StateNode(
                description="Tracking weekly progress",
                on={
                    "ACTIVITY_LOGGED": Transition(target="evaluating", actions=(_update_week_progress,)),
                    "WEEK_COMPLETED": Transition(target="evaluating", actions=(_process_week_completion,)),
                    "UPDATE_STATUS": Transition(actions=(_update_tier_status,)),
                },
            ),
            "evaluating": StateNode(
                description="Deciding between promotion and week completion",
                always=[
                    Transition(target="promoting", guard=should_promote_tier),
                    Transition(target="weekCompleted", guard=week_target_met),
                    Transition(target="tracking"),
                ],
            ),
            "weekCompleted": StateNode(
                description="Week target met without a promotion",
                after=Delayed(week_completed_timeout_ms, "tracking"),
                on={
                    "CHECK_PROMOTION": "evaluating",
                },
            ),
            "promoting": StateNode(
                description="Promotion pending confirmation",
                entry=(_initiate_promotion,),
                on={
                    "PROMOTE_TIER": Transition(
                        target="celebrating", guard=_has_promotion_target, actions=(_promote_tier,)
                    ),
                },
            ),
            "celebrating": StateNode(
                description="Showing the promotion celebration",
                entry=(_show_celebration,),
                after=Delayed(celebration_timeout_ms, "tracking", actions=(_celebration_viewed,)),
                on={
                    "CELEBRATION_VIEWED": Transition(target="tracking", actions=(_celebration_viewed,)),
                },
            ),
            "error": StateNode(
                on={
                    "RESET_PROGRESS": Transition(target="tracking", actions=(_reset,)),
                },
            ),
        },
    )


# =============================================================================
# Session
# =============================================================================


class TierProgressionTracker:
    """Hosts one tier progression machine for a user and syncs it from the activity log."""

    def __init__(
        self,
        activities: ActivityStore,
        user_id: str,
        scheduler: Scheduler | None = None,
        settings: MoaiSettings | None = None,
    ):
        self.user_id = user_id
        self._activities = activities
        self._history_weeks = settings.tier_history_weeks if settings else 8
        machine = create_tier_machine(
            celebration_timeout_ms=settings.tier_celebration_timeout_ms if settings else CELEBRATION_TIMEOUT_MS,
            week_completed_timeout_ms=settings.week_completed_timeout_ms if settings else WEEK_COMPLETED_TIMEOUT_MS,
        )
        self.interpreter = Interpreter(machine, scheduler=scheduler)

    def start(self) -> "TierProgressionTracker":
        self.interpreter.start()
        return self

    def stop(self) -> None:
        self.interpreter.stop()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()

    @property
    def state(self) -> MachineState:
        return self.interpreter.state

    @property
    def context(self) -> TierProgressionContext:
        return self.state.context

    def send(self, event: Event | str, **data: Any) -> MachineState:
        return self.interpreter.send(event, **data)

    async def sync(self) -> MachineState:
        """Fetch the user's tier status and push it into the machine."""
        try:
            status = await self._activities.get_user_tier_status(self.user_id, weeks=self._history_weeks)
        except Exception as e:
            logger.warning(f"Tier status sync failed for user {self.user_id}: {e}")
            return self.send("REPORT_ERROR", error=str(e))
        return self.send("UPDATE_STATUS", tier_status=status)

    # State predicates

    @property
    def is_tracking(self) -> bool:
        return self.state.matches("tracking")

    @property
    def is_week_completed(self) -> bool:
        return self.state.matches("weekCompleted")

    @property
    def is_promoting(self) -> bool:
        return self.state.matches("promoting")

    @property
    def is_celebrating(self) -> bool:
        return self.state.matches("celebrating")

    @property
    def has_error(self) -> bool:
        return self.state.matches("error")

    # Actions

    def activity_logged(self, activities_this_week: int) -> MachineState:
        return self.send("ACTIVITY_LOGGED", activities_this_week=activities_this_week)

    def week_completed(self, week_activities: int, week_target: int | None = None) -> MachineState:
        return self.send(
            "WEEK_COMPLETED",
            week_activities=week_activities,
            week_target=self.context.weekly_target if week_target is None else week_target,
        )

    def check_promotion(self) -> MachineState:
        return self.send("CHECK_PROMOTION")

    def promote(self, new_tier: TierLevel | None = None) -> MachineState:
        return self.send("PROMOTE_TIER", new_tier=new_tier or self.context.new_tier)

    def celebration_viewed(self) -> MachineState:
        return self.send("CELEBRATION_VIEWED")

    def reset(self) -> MachineState:
        return self.send("RESET_PROGRESS")
