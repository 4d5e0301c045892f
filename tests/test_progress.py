"""
Tests for the onboarding progress controller.

The profile store is mocked; async methods are driven with asyncio.run.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from moai.db.errors import ProfileStoreError
from moai.models.profile import Profile
from onboarding.forms import OnboardingFormData, build_step_update
from onboarding.progress import AuthState, OnboardingProgressController


@pytest.fixture
def profiles():
    store = MagicMock()
    store.fetch_profile = AsyncMock(return_value=None)
    store.update_profile = AsyncMock(return_value=None)
    return store


def make_controller(profiles, authenticated=True, auth_loading=False):
    return OnboardingProgressController(
        profiles, "user-1", AuthState(is_authenticated=authenticated, is_loading=auth_loading)
    )


class TestLoading:
    """Test refresh and the loading flag."""

    def test_loading_until_first_fetch(self, profiles):
        controller = make_controller(profiles)
        assert controller.is_loading
        assert not controller.should_show_onboarding

        asyncio.run(controller.refresh())
        assert not controller.is_loading

    def test_auth_loading_keeps_loading(self, profiles):
        controller = make_controller(profiles, auth_loading=True)
        asyncio.run(controller.refresh())
        assert controller.is_loading

    def test_incomplete_profile_shows_onboarding(self, profiles, profile_through_step):
        profiles.fetch_profile.return_value = profile_through_step(2)
        controller = make_controller(profiles)
        asyncio.run(controller.refresh())

        assert controller.should_show_onboarding
        assert controller.current_checkpoint == 3
        assert controller.can_proceed_to_step(3)
        assert not controller.can_proceed_to_step(4)
        assert controller.can_resume

    def test_complete_profile(self, profiles, complete_profile_row):
        profiles.fetch_profile.return_value = Profile.from_row(complete_profile_row)
        controller = make_controller(profiles)
        asyncio.run(controller.refresh())

        assert controller.is_complete
        assert controller.is_onboarding_complete
        assert not controller.should_show_onboarding
        assert controller.current_checkpoint == 6
        assert not controller.can_resume

    def test_completed_flag_hides_onboarding_despite_cleared_answers(self, profiles):
        profiles.fetch_profile.return_value = Profile(
            first_name="A", last_name="B", onboarding_completed=True, onboarding_step=6
        )
        controller = make_controller(profiles)
        asyncio.run(controller.refresh())

        assert controller.is_complete
        assert not controller.should_show_onboarding
        assert not controller.can_resume
        assert not controller.can_proceed_to_step(3)

    def test_unauthenticated_skips_fetch(self, profiles):
        controller = make_controller(profiles, authenticated=False)
        asyncio.run(controller.refresh())

        profiles.fetch_profile.assert_not_called()
        assert not controller.is_loading
        assert not controller.should_show_onboarding
        assert controller.current_checkpoint == 1

    def test_fetch_failure_degrades(self, profiles):
        profiles.fetch_profile.side_effect = ProfileStoreError("connection reset", "fetch_profile")
        controller = make_controller(profiles)

        result = asyncio.run(controller.refresh())

        assert result is None
        assert controller.profile is None
        assert controller.error == "connection reset"
        assert not controller.is_loading
        assert not controller.is_complete
        assert controller.current_checkpoint == 1

    def test_successful_refresh_clears_error(self, profiles, profile_through_step):
        profiles.fetch_profile.side_effect = [ProfileStoreError("boom"), profile_through_step(1)]
        controller = make_controller(profiles)
        asyncio.run(controller.refresh())
        asyncio.run(controller.refresh())

        assert controller.error is None
        assert controller.current_checkpoint == 2

    def test_snapshot(self, profiles, profile_through_step):
        profiles.fetch_profile.return_value = profile_through_step(1)
        controller = make_controller(profiles)
        asyncio.run(controller.refresh())

        snapshot = controller.snapshot()
        assert snapshot.user_id == "user-1"
        assert snapshot.current_checkpoint == 2
        assert snapshot.completed_steps == [1]
        assert [c.can_access for c in snapshot.checkpoints] == [True, True, False, False, False, False]


class TestMutations:
    """Test writes through the controller."""

    def test_save_progress_writes_step_and_refetches(self, profiles, profile_through_step):
        profiles.update_profile.return_value = profile_through_step(2)
        profiles.fetch_profile.return_value = profile_through_step(2)
        controller = make_controller(profiles)

        ok = asyncio.run(controller.save_progress(1, OnboardingFormData(fitness_goals=["run-5k"])))

        assert ok is True
        profiles.update_profile.assert_awaited_once_with(
            "user-1", {"onboarding_step": 2, "fitness_goals": ["run-5k"]}
        )
        profiles.fetch_profile.assert_awaited_once_with("user-1")
        assert controller.current_checkpoint == 3

    def test_save_failure_returns_false(self, profiles):
        profiles.update_profile.side_effect = ProfileStoreError("write failed")
        controller = make_controller(profiles)

        ok = asyncio.run(controller.save_progress(0, OnboardingFormData(first_name="A", last_name="B")))

        assert ok is False
        assert controller.error == "write failed"
        profiles.fetch_profile.assert_not_called()

    def test_missing_row_returns_false(self, profiles):
        controller = make_controller(profiles)
        assert asyncio.run(controller.reset_progress()) is False
        assert controller.error == "Profile not found"

    def test_unauthenticated_write_refused(self, profiles):
        controller = make_controller(profiles, authenticated=False)
        assert asyncio.run(controller.complete_onboarding()) is False
        profiles.update_profile.assert_not_called()

    def test_complete_onboarding(self, profiles, complete_profile_row):
        profile = Profile.from_row(complete_profile_row)
        profiles.update_profile.return_value = profile
        profiles.fetch_profile.return_value = profile
        controller = make_controller(profiles)

        ok = asyncio.run(controller.complete_onboarding(OnboardingFormData(selected_moai_type="create")))

        assert ok is True
        updates = profiles.update_profile.await_args.args[1]
        assert updates["onboarding_completed"] is True
        assert updates["onboarding_step"] == 6
        assert updates["selected_moai_type"] == "create"
        assert updates["onboarding_completed_at"]
        assert controller.is_complete

    def test_reset_progress(self, profiles, profile_through_step):
        profiles.update_profile.return_value = profile_through_step(0)
        profiles.fetch_profile.return_value = profile_through_step(0)
        controller = make_controller(profiles)

        assert asyncio.run(controller.reset_progress()) is True
        assert profiles.update_profile.await_args.args[1] == {
            "onboarding_step": 1,
            "onboarding_completed": False,
            "onboarding_completed_at": None,
        }


class TestStepUpdates:
    """Test which columns each screen writes."""

    def test_identity(self):
        data = OnboardingFormData(first_name=" Sam ", last_name="Rivera", height=180, measurement_system="metric")
        assert build_step_update(0, data) == {
            "onboarding_step": 1,
            "first_name": "Sam",
            "last_name": "Rivera",
            "height": 180,
            "measurement_system": "metric",
        }

    def test_unanswered_fields_not_written(self):
        assert build_step_update(1, OnboardingFormData()) == {"onboarding_step": 2}

    def test_movement(self):
        data = OnboardingFormData(movement_activities={"running": {"frequency": 3}})
        assert build_step_update(2, data)["movement_activities"] == {
            "running": {"selected": True, "frequency": 3}
        }

    def test_commitment_sets_flag(self):
        data = OnboardingFormData(weekly_commitment={"monday": True, "friday": False})
        updates = build_step_update(4, data)
        assert updates["onboarding_step"] == 5
        assert updates["first_week_commitment_set"] is True

    def test_no_days_committed(self):
        data = OnboardingFormData(weekly_commitment={"monday": False})
        assert build_step_update(4, data)["first_week_commitment_set"] is False

    @pytest.mark.parametrize("step_index", range(6))
    def test_pointer_is_saved_step(self, step_index):
        assert build_step_update(step_index, OnboardingFormData())["onboarding_step"] == step_index + 1

    def test_negative_index_keeps_pointer_at_one(self):
        assert build_step_update(-1, OnboardingFormData()) == {"onboarding_step": 1}
