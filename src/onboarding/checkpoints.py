"""
Onboarding checkpoint gating.

A step is reachable only when every step before it is complete. The stored
`onboarding_step` pointer is honoured when it points at a reachable step;
a stale pointer (ahead of actual progress) falls back to the lowest
reachable incomplete step. The gate never looks at `onboarding_completed`
beyond step 6 itself; skipping onboarding for finished users is the
controller's job.
"""

from pydantic import BaseModel

from moai.models.profile import Profile

from .steps import FIRST_STEP, LAST_STEP, OnboardingStep, evaluate_steps


class CheckpointStatus(BaseModel):
    step: int
    completed: bool
    can_access: bool


class CheckpointGate:
    """Answers gating questions about one profile snapshot."""

    def __init__(self, profile: Profile | None):
        self.profile = profile
        self._completion = evaluate_steps(profile)

    def is_complete(self, step: int) -> bool:
        try:
            return self._completion[OnboardingStep(step)]
        except ValueError:
            return False

    def can_access_step(self, step: int) -> bool:
        if step == FIRST_STEP:
            return True
        if step < FIRST_STEP or step > LAST_STEP:
            return False
        return all(self._completion[OnboardingStep(s)] for s in range(FIRST_STEP, step))

    def status_of(self, step: int) -> CheckpointStatus:
        return CheckpointStatus(
            step=step,
            completed=self.is_complete(step),
            can_access=self.can_access_step(step),
        )

    def current_checkpoint(self) -> int:
        if self.profile is None:
            return int(FIRST_STEP)

        pointer = min(max(self.profile.onboarding_step, FIRST_STEP), LAST_STEP)
        if self.can_access_step(pointer):
            return pointer

        for step in OnboardingStep:
            if self.can_access_step(step) and not self._completion[step]:
                return int(step)
        return int(LAST_STEP)

    def is_onboarding_complete(self) -> bool:
        return self.profile is not None and self.profile.onboarding_completed

    def completed_steps(self) -> list[int]:
        return [int(step) for step, done in self._completion.items() if done]

    def furthest_accessible_step(self) -> int:
        furthest = int(FIRST_STEP)
        for step in OnboardingStep:
            if self.can_access_step(step):
                furthest = int(step)
        return furthest
