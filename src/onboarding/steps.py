"""
Onboarding step evaluation.

Six fixed checkpoints, each complete when a predicate over the normalized
profile holds. Completion is derived on every read and never persisted.
"""

import logging
from enum import IntEnum
from typing import Callable

from moai.models.profile import Profile

logger = logging.getLogger(__name__)


class OnboardingStep(IntEnum):
    IDENTITY = 1
    GOALS = 2
    MOVEMENT = 3
    ACCESS = 4
    COMMITMENT = 5
    MOAI_SETUP = 6


FIRST_STEP = OnboardingStep.IDENTITY
LAST_STEP = OnboardingStep.MOAI_SETUP
TOTAL_STEPS = len(OnboardingStep)


STEP_TITLES: dict[OnboardingStep, str] = {
    OnboardingStep.IDENTITY: "Identity",
    OnboardingStep.GOALS: "Goals",
    OnboardingStep.MOVEMENT: "Movement",
    OnboardingStep.ACCESS: "Access",
    OnboardingStep.COMMITMENT: "Commitment",
    OnboardingStep.MOAI_SETUP: "Moai Setup",
}


def _identity(profile: Profile) -> bool:
    return bool(profile.first_name.strip() and profile.last_name.strip())


_PREDICATES: dict[OnboardingStep, Callable[[Profile], bool]] = {
    OnboardingStep.IDENTITY: _identity,
    OnboardingStep.GOALS: lambda p: len(p.fitness_goals) > 0,
    OnboardingStep.MOVEMENT: lambda p: len(p.movement_activities) > 0,
    OnboardingStep.ACCESS: lambda p: len(p.equipment_access) > 0,
    OnboardingStep.COMMITMENT: lambda p: p.first_week_commitment_set,
    OnboardingStep.MOAI_SETUP: lambda p: p.onboarding_completed,
}


def is_step_complete(profile: Profile | None, step: int) -> bool:
    """Whether one step's predicate holds. Unknown steps are incomplete."""
    if profile is None:
        return False
    try:
        predicate = _PREDICATES[OnboardingStep(step)]
    except ValueError:
        return False
    return bool(predicate(profile))


def evaluate_steps(profile: Profile | None) -> dict[OnboardingStep, bool]:
    """Completion of every step. A missing profile has nothing complete."""
    completion = {step: is_step_complete(profile, step) for step in OnboardingStep}
    if profile is not None:
        logger.debug(f"Step completion for {profile.id}: {[int(s) for s, done in completion.items() if done]}")
    return completion
