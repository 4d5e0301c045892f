"""
Moai Onboarding.

Six-checkpoint onboarding flow: step completion is derived from the user's
profile, gating decides which checkpoints are reachable, and the progress
controller ties both to the profile store.

Checkpoints:
1. Identity - first and last name
2. Goals - at least one fitness goal
3. Movement - at least one movement activity
4. Access - at least one piece of equipment access
5. Commitment - first week commitment set
6. Moai Setup - onboarding marked complete
"""

from .checkpoints import CheckpointGate, CheckpointStatus
from .forms import OnboardingFormData
from .progress import AuthState, OnboardingProgressController, OnboardingSnapshot
from .steps import OnboardingStep, evaluate_steps, is_step_complete

__all__ = [
    "CheckpointGate",
    "CheckpointStatus",
    "OnboardingFormData",
    "AuthState",
    "OnboardingProgressController",
    "OnboardingSnapshot",
    "OnboardingStep",
    "evaluate_steps",
    "is_step_complete",
]
