"""
Tests for onboarding step evaluation and checkpoint gating.
"""

import pytest

from moai.models.profile import Profile
from onboarding.checkpoints import CheckpointGate
from onboarding.steps import OnboardingStep, evaluate_steps, is_step_complete


class TestEvaluateSteps:
    """Test per-step completion predicates."""

    def test_no_profile_nothing_complete(self):
        completion = evaluate_steps(None)
        assert set(completion) == set(OnboardingStep)
        assert not any(completion.values())

    def test_complete_profile(self, complete_profile_row):
        completion = evaluate_steps(Profile.from_row(complete_profile_row))
        assert all(completion.values())

    def test_identity_needs_both_names(self):
        assert not is_step_complete(Profile(first_name="Sam"), OnboardingStep.IDENTITY)
        assert not is_step_complete(Profile(first_name="Sam", last_name="   "), OnboardingStep.IDENTITY)
        assert is_step_complete(Profile(first_name="Sam", last_name="R"), OnboardingStep.IDENTITY)

    def test_movement_needs_a_key(self):
        assert not is_step_complete(Profile(), OnboardingStep.MOVEMENT)
        assert is_step_complete(Profile(movement_activities={"walk": {}}), OnboardingStep.MOVEMENT)

    def test_commitment_flag(self):
        assert is_step_complete(Profile(first_week_commitment_set=True), OnboardingStep.COMMITMENT)

    @pytest.mark.parametrize("step", [0, 7, -1, 100])
    def test_unknown_step_incomplete(self, complete_profile_row, step):
        assert is_step_complete(Profile.from_row(complete_profile_row), step) is False

    def test_malformed_goals_incomplete(self):
        """A "null" string in the goals column means step 2 is incomplete, not an error."""
        profile = Profile.from_row({"id": "u", "first_name": "A", "last_name": "B", "fitness_goals": "null"})
        completion = evaluate_steps(profile)
        assert completion[OnboardingStep.IDENTITY] is True
        assert completion[OnboardingStep.GOALS] is False


class TestCheckpointGate:
    """Test reachability and current checkpoint resolution."""

    def test_no_profile(self):
        gate = CheckpointGate(None)
        assert gate.current_checkpoint() == 1
        assert gate.can_access_step(1)
        assert not gate.can_access_step(2)
        assert not gate.is_onboarding_complete()

    def test_first_step_always_accessible(self, profile_through_step):
        assert CheckpointGate(profile_through_step(0)).can_access_step(1)

    @pytest.mark.parametrize("step", [0, 7, -2])
    def test_out_of_range_inaccessible(self, profile_through_step, step):
        assert not CheckpointGate(profile_through_step(5)).can_access_step(step)

    def test_access_requires_all_previous(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(3))
        assert [gate.can_access_step(n) for n in range(1, 7)] == [True, True, True, True, False, False]

    def test_gap_blocks_later_steps(self):
        """Goals missing but later answers present: nothing past step 2 is reachable."""
        profile = Profile(
            first_name="A", last_name="B",
            movement_activities={"run": {}}, equipment_access=["gym"],
            first_week_commitment_set=True, onboarding_step=5,
        )
        gate = CheckpointGate(profile)
        assert gate.can_access_step(2)
        assert not gate.can_access_step(3)
        assert not gate.can_access_step(5)

    def test_stale_pointer_overridden(self):
        """Pointer at 4 while step 2 is incomplete resolves to 2."""
        profile = Profile(first_name="A", last_name="B", onboarding_step=4)
        assert CheckpointGate(profile).current_checkpoint() == 2

    def test_all_complete(self, complete_profile_row):
        gate = CheckpointGate(Profile.from_row(complete_profile_row))
        assert gate.current_checkpoint() == 6
        assert gate.is_onboarding_complete()

    def test_accessible_pointer_trusted(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(4, onboarding_step=3))
        assert gate.current_checkpoint() == 3

    def test_pointer_beyond_last_step_clamped(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(5, onboarding_step=9))
        assert gate.current_checkpoint() == 6

    def test_all_answered_but_not_marked_complete(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(5, onboarding_step=6))
        assert gate.current_checkpoint() == 6
        assert not gate.is_onboarding_complete()

    def test_completed_with_cleared_answers_still_gated(self):
        profile = Profile(first_name="A", last_name="B", onboarding_completed=True, onboarding_step=6)
        gate = CheckpointGate(profile)

        assert gate.is_onboarding_complete()
        assert gate.status_of(2).completed is False
        assert gate.can_access_step(3) is False
        assert gate.current_checkpoint() == 2

    @pytest.mark.parametrize("completed", [True, False])
    def test_access_iff_previous_steps_complete(self, profile_through_step, completed):
        for n in range(0, 7):
            gate = CheckpointGate(profile_through_step(n, onboarding_completed=completed))
            for step in range(2, 7):
                expected = all(gate.status_of(k).completed for k in range(1, step))
                assert gate.can_access_step(step) == expected

    def test_current_checkpoint_always_accessible(self, profile_through_step):
        for n in range(0, 7):
            for pointer in range(1, 9):
                gate = CheckpointGate(profile_through_step(n, onboarding_step=pointer))
                assert gate.can_access_step(gate.current_checkpoint())

    def test_idempotent(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(2, onboarding_step=5))
        assert gate.current_checkpoint() == gate.current_checkpoint() == 3

    def test_status_of(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(2))
        status = gate.status_of(3)
        assert status.step == 3
        assert status.completed is False
        assert status.can_access is True
        assert gate.status_of(2).completed is True

    def test_completed_and_furthest(self, profile_through_step):
        gate = CheckpointGate(profile_through_step(3))
        assert gate.completed_steps() == [1, 2, 3]
        assert gate.furthest_accessible_step() == 4
