"""
Pytest configuration and fixtures for Moai tests.
"""

import os

import pytest
from unittest.mock import MagicMock

# Set test environment before importing moai modules
os.environ["MOAI_ENV"] = "development"
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_ANON_KEY"] = ""
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = ""

from moai.models.profile import Profile  # noqa: E402


@pytest.fixture
def mock_supabase():
    """Mock Supabase client for unit tests. Query builders chain back to the same table."""
    mock_client = MagicMock()

    mock_table = MagicMock()
    for method in (
        "select", "insert", "update", "upsert", "delete",
        "eq", "neq", "gte", "lte", "in_", "or_", "order", "limit",
        "maybe_single", "single",
    ):
        getattr(mock_table, method).return_value = mock_table
    mock_table.execute.return_value = MagicMock(data=[], count=None)

    mock_client.table.return_value = mock_table

    return mock_client


@pytest.fixture
def mock_table(mock_supabase):
    """The table object every mock_supabase.table() call returns."""
    return mock_supabase.table.return_value


@pytest.fixture
def complete_profile_row():
    """A profiles row with all six checkpoints done."""
    return {
        "id": "user-1",
        "email": "sam@example.com",
        "first_name": "Sam",
        "last_name": "Rivera",
        "onboarding_step": 6,
        "onboarding_completed": True,
        "onboarding_completed_at": "2024-03-01T12:00:00+00:00",
        "fitness_goals": ["build-strength", "consistency"],
        "movement_activities": {"running": {"selected": True, "frequency": 3}},
        "equipment_access": ["gym"],
        "first_week_commitment_set": True,
        "weekly_commitment": {"monday": True, "wednesday": True},
        "moai_path": "join",
        "selected_moai_type": "join",
    }


@pytest.fixture
def new_profile_row():
    """A freshly created profile: nothing answered yet."""
    return {
        "id": "user-2",
        "email": "new@example.com",
        "first_name": None,
        "last_name": None,
        "onboarding_step": 1,
        "onboarding_completed": False,
        "fitness_goals": None,
        "movement_activities": None,
        "equipment_access": None,
        "first_week_commitment_set": False,
    }


@pytest.fixture
def profile_through_step(complete_profile_row):
    """Build a Profile with checkpoints 1..n complete and the rest not."""

    def build(n: int, **overrides) -> Profile:
        row = dict(complete_profile_row)
        row.update(onboarding_completed=False, onboarding_completed_at=None, onboarding_step=n + 1)
        if n < 1:
            row.update(first_name="", last_name="")
        if n < 2:
            row["fitness_goals"] = []
        if n < 3:
            row["movement_activities"] = {}
        if n < 4:
            row["equipment_access"] = []
        if n < 5:
            row["first_week_commitment_set"] = False
        if n >= 6:
            row["onboarding_completed"] = True
        row.update(overrides)
        return Profile.from_row(row)

    return build
