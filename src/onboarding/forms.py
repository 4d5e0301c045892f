"""
Onboarding Forms - answers collected by the six onboarding screens.

OnboardingFormData carries whatever the client has gathered so far. Saving a
step writes only that step's columns, and only the ones actually answered,
so an earlier screen's answers are never blanked by a later save.
"""

import logging
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from .steps import LAST_STEP

logger = logging.getLogger(__name__)


class MovementActivity(BaseModel):
    selected: bool = True
    frequency: int = Field(default=0, ge=0, le=7)  # days per week


class OnboardingFormData(BaseModel):
    """Client-side onboarding answers, all optional."""

    # Identity & personal info
    first_name: str | None = None
    last_name: str | None = None
    birth_date: str | None = None
    height: float | None = None
    weight: float | None = None
    measurement_system: Literal["imperial", "metric"] | None = None

    # Goals
    fitness_goals: list[str] = Field(default_factory=list)

    # Movement snapshot
    movement_activities: dict[str, MovementActivity] = Field(default_factory=dict)

    # Access & constraints
    equipment_access: list[str] = Field(default_factory=list)
    physical_limitations: str | None = None

    # Weekly commitment, keyed by weekday
    weekly_commitment: dict[str, bool] = Field(default_factory=dict)

    # Moai setup
    moai_path: str | None = None
    selected_moai_type: Literal["create", "join", "skip"] | None = None

    @field_validator("first_name", "last_name")
    @classmethod
    def _strip_names(cls, v: str | None) -> str | None:
        return v.strip() if isinstance(v, str) else v


def _answered(data: OnboardingFormData, *fields: str) -> dict[str, Any]:
    updates = {}
    for name in fields:
        value = getattr(data, name)
        if value:
            updates[name] = value
    return updates


def build_step_update(step_index: int, data: OnboardingFormData) -> dict[str, Any]:
    """
    Profile columns to write when the screen at `step_index` (0-based) is saved.

    The stored pointer becomes the 1-based number of the saved step, so a
    returning user resumes on the screen they last saved.
    """
    updates: dict[str, Any] = {"onboarding_step": max(step_index + 1, 1)}

    if step_index == 0:
        updates.update(_answered(data, "first_name", "last_name", "birth_date", "height", "weight", "measurement_system"))
    elif step_index == 1:
        updates.update(_answered(data, "fitness_goals"))
    elif step_index == 2:
        if data.movement_activities:
            updates["movement_activities"] = {
                name: activity.model_dump() for name, activity in data.movement_activities.items()
            }
    elif step_index == 3:
        updates.update(_answered(data, "equipment_access", "physical_limitations"))
    elif step_index == 4:
        if data.weekly_commitment:
            updates["weekly_commitment"] = data.weekly_commitment
            updates["first_week_commitment_set"] = any(data.weekly_commitment.values())
    elif step_index == 5:
        updates.update(_answered(data, "moai_path", "selected_moai_type"))
    else:
        logger.debug(f"No answer columns for step index {step_index}")

    return updates


def build_completion_update(data: OnboardingFormData | None, completed_at: str) -> dict[str, Any]:
    """Columns that mark onboarding finished, plus any final moai setup answers."""
    updates: dict[str, Any] = {
        "onboarding_completed": True,
        "onboarding_completed_at": completed_at,
        "onboarding_step": int(LAST_STEP),
    }
    if data is not None:
        updates.update(_answered(data, "moai_path", "selected_moai_type"))
    return updates


def build_reset_update() -> dict[str, Any]:
    return {
        "onboarding_step": 1,
        "onboarding_completed": False,
        "onboarding_completed_at": None,
    }
