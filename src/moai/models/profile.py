"""
Moai - Profile model.

Maps a row of the Supabase `profiles` table. This is the one place where
raw storage values are normalized: onboarding answer columns can arrive as
structured JSON (jsonb / text[]) or as serialized strings written by older
clients. Everything downstream only sees the normalized shape.

Normalization never raises. A value that can't be decoded into the expected
shape becomes the empty default, which reads as "step incomplete".
"""

import json
import logging
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)


# =============================================================================
# Tolerant coercion helpers
# =============================================================================


def _decode_json(value: Any) -> Any:
    """Decode a JSON string, returning None on failure."""
    try:
        return json.loads(value)
    except (TypeError, ValueError) as e:
        logger.debug(f"Could not decode profile field {value!r}: {e}")
        return None


def coerce_list(value: Any) -> list:
    """Return value as a list. JSON-encoded lists are decoded, anything else is []."""
    if isinstance(value, str):
        value = _decode_json(value)
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return []


def coerce_mapping(value: Any) -> dict:
    """Return value as a dict. JSON-encoded objects are decoded, anything else is {}."""
    if isinstance(value, str):
        value = _decode_json(value)
    if isinstance(value, dict):
        return dict(value)
    return {}


def coerce_bool(value: Any) -> bool:
    """Booleans pass through; "true"/"false" strings are read case-insensitively."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def coerce_text(value: Any) -> str:
    """Strings pass through, everything else is ""."""
    return value if isinstance(value, str) else ""


# =============================================================================
# Profile
# =============================================================================


class Profile(BaseModel):
    """
    A user's persisted account and onboarding record.

    Only the fields the core reads are typed. Unknown columns are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = ""
    email: str | None = None

    # Identity (step 1)
    first_name: str = ""
    last_name: str = ""

    # Onboarding bookkeeping
    onboarding_step: int = 1
    onboarding_completed: bool = False
    onboarding_completed_at: datetime | None = None

    # Onboarding answers (steps 2-5)
    fitness_goals: list[str] = Field(default_factory=list)
    movement_activities: dict[str, Any] = Field(default_factory=dict)
    equipment_access: list[str] = Field(default_factory=list)
    first_week_commitment_set: bool = False

    # Passthrough answers, stored but not used for gating
    birth_date: str | None = None
    height: float | None = None
    weight: float | None = None
    measurement_system: str | None = None
    physical_limitations: str | None = None
    weekly_commitment: dict[str, Any] = Field(default_factory=dict)
    moai_path: str | None = None
    selected_moai_type: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return coerce_text(v)

    @field_validator("onboarding_step", mode="before")
    @classmethod
    def _step(cls, v: Any) -> int:
        # Older rows use 0 for "not started"; the pointer is 1-based
        try:
            step = int(v)
        except (TypeError, ValueError):
            return 1
        return step if step >= 1 else 1

    @field_validator("onboarding_completed", "first_week_commitment_set", mode="before")
    @classmethod
    def _flag(cls, v: Any) -> bool:
        return coerce_bool(v)

    @field_validator("fitness_goals", "equipment_access", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> list[str]:
        return [str(item) for item in coerce_list(v) if item is not None]

    @field_validator("movement_activities", "weekly_commitment", mode="before")
    @classmethod
    def _mapping(cls, v: Any) -> dict:
        return {str(k): val for k, val in coerce_mapping(v).items()}

    @field_validator("height", "weight", "onboarding_completed_at", mode="before")
    @classmethod
    def _optional_scalar(cls, v: Any) -> Any:
        return None if v in ("", "null") else v

    @field_validator(
        "birth_date", "measurement_system", "physical_limitations",
        "moai_path", "selected_moai_type", "email",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, v: Any) -> str | None:
        return v if isinstance(v, str) and v else None

    @classmethod
    def from_row(cls, row: dict) -> "Profile":
        """
        Build a Profile from a raw `profiles` row.

        Scalar columns that still fail validation after coercion (e.g. a
        height of "tall") are dropped rather than rejecting the whole row.
        """
        try:
            return cls.model_validate(row)
        except ValueError as e:
            logger.warning(f"Profile row {row.get('id')} had invalid scalar fields, dropping them: {e}")
            cleaned = dict(row)
            for key in ("height", "weight", "onboarding_completed_at"):
                cleaned.pop(key, None)
            return cls.model_validate(cleaned)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()
