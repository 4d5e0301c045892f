"""
Onboarding progress controller.

Owns one user's profile snapshot and answers the questions routing and
screens ask (should onboarding show, which checkpoint, may the user open
step N). Writes go through the profile store and are followed by a re-fetch
so the snapshot always reflects the stored record.

Store failures never escape: they are logged, recorded in `error`, and the
snapshot degrades to "no profile" (onboarding incomplete).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from pydantic import BaseModel, Field

from moai.db.errors import ProfileStoreError
from moai.db.profiles import ProfileStore
from moai.models.profile import Profile

from .checkpoints import CheckpointGate, CheckpointStatus
from .forms import OnboardingFormData, build_completion_update, build_reset_update, build_step_update
from .steps import OnboardingStep

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthState:
    """Auth context supplied by the host (session restore may still be running)."""

    is_authenticated: bool
    is_loading: bool = False


class OnboardingSnapshot(BaseModel):
    """Everything a client needs to route a user through onboarding."""

    user_id: str
    is_loading: bool
    is_complete: bool
    should_show_onboarding: bool
    current_checkpoint: int
    can_resume: bool
    completed_steps: list[int] = Field(default_factory=list)
    furthest_accessible_step: int = 1
    checkpoints: list[CheckpointStatus] = Field(default_factory=list)
    error: str | None = None


class OnboardingProgressController:
    """Onboarding state for one user, backed by the profile store."""

    def __init__(self, profiles: ProfileStore, user_id: str, auth: AuthState):
        self._profiles = profiles
        self.user_id = user_id
        self.auth = auth
        self.profile: Profile | None = None
        self.error: str | None = None
        self._loaded = False
        self._gate = CheckpointGate(None)

    # =========================================================================
    # Loading
    # =========================================================================

    def _set_profile(self, profile: Profile | None) -> None:
        self.profile = profile
        self._gate = CheckpointGate(profile)

    async def refresh(self) -> Profile | None:
        """Fetch the profile once. Failures are recorded, not raised."""
        if not self.auth.is_authenticated:
            self._set_profile(None)
            self._loaded = True
            return None

        try:
            profile = await self._profiles.fetch_profile(self.user_id)
        except ProfileStoreError as e:
            logger.warning(f"Onboarding profile fetch failed for {self.user_id}: {e}")
            self.error = str(e)
            self._set_profile(None)
        else:
            self.error = None
            self._set_profile(profile)
        finally:
            self._loaded = True

        return self.profile

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def is_loading(self) -> bool:
        return self.auth.is_loading or not self._loaded

    @property
    def is_complete(self) -> bool:
        return self._gate.is_onboarding_complete()

    @property
    def is_onboarding_complete(self) -> bool:
        return self.is_complete

    @property
    def should_show_onboarding(self) -> bool:
        return self.auth.is_authenticated and not self.is_loading and not self.is_complete

    @property
    def current_checkpoint(self) -> int:
        return self._gate.current_checkpoint()

    @property
    def can_resume(self) -> bool:
        """A partly finished onboarding exists to pick up from."""
        return self.profile is not None and self.profile.onboarding_step > 1 and not self.is_complete

    def get_checkpoint_status(self, step: int) -> CheckpointStatus:
        return self._gate.status_of(step)

    def can_proceed_to_step(self, step: int) -> bool:
        return self._gate.can_access_step(step)

    def snapshot(self) -> OnboardingSnapshot:
        return OnboardingSnapshot(
            user_id=self.user_id,
            is_loading=self.is_loading,
            is_complete=self.is_complete,
            should_show_onboarding=self.should_show_onboarding,
            current_checkpoint=self.current_checkpoint,
            can_resume=self.can_resume,
            completed_steps=self._gate.completed_steps(),
            furthest_accessible_step=self._gate.furthest_accessible_step(),
            checkpoints=[self._gate.status_of(step) for step in OnboardingStep],
            error=self.error,
        )

    # =========================================================================
    # Mutations
    # =========================================================================

    async def _write(self, updates: dict, operation: str) -> bool:
        if not self.auth.is_authenticated:
            self.error = "User not authenticated"
            return False

        try:
            updated = await self._profiles.update_profile(self.user_id, updates)
        except ProfileStoreError as e:
            logger.warning(f"Onboarding {operation} failed for {self.user_id}: {e}")
            self.error = str(e)
            return False

        if updated is None:
            logger.warning(f"Onboarding {operation} for {self.user_id} matched no profile")
            self.error = "Profile not found"
            return False

        logger.info(f"Onboarding {operation} saved for {self.user_id}")
        await self.refresh()
        return self.error is None

    async def save_progress(self, step_index: int, data: OnboardingFormData) -> bool:
        """Save the answers of the screen at `step_index` (0-based) and advance the pointer."""
        return await self._write(build_step_update(step_index, data), f"step {step_index}")

    async def complete_onboarding(self, data: OnboardingFormData | None = None) -> bool:
        completed_at = datetime.now(timezone.utc).isoformat()
        return await self._write(build_completion_update(data, completed_at), "completion")

    async def reset_progress(self) -> bool:
        return await self._write(build_reset_update(), "reset")
