"""
Moai - Buddy matching models.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

from moai.models.profile import coerce_list, coerce_text


class BuddyPreferences(BaseModel):
    """What a user is looking for in an accountability buddy."""

    timezone: str | None = None
    workout_types: list[str] = Field(default_factory=list)
    commitment_level: Literal["low", "medium", "high"] = "medium"
    communication_style: Literal["daily", "weekly", "as-needed"] = "weekly"
    availability_hours: list[str] = Field(default_factory=list)  # morning/afternoon/evening
    fitness_goals: list[str] = Field(default_factory=list)
    experience_level: Literal["beginner", "intermediate", "advanced"] | None = None


class BuddyProfile(BaseModel):
    """Public slice of a candidate's profile."""

    id: str
    first_name: str = ""
    last_name: str = ""
    profile_image: str | None = None
    bio: str | None = None


class BuddyCandidate(BaseModel):
    """
    Matching columns of a `profiles` row.

    List columns may arrive JSON-encoded, like the onboarding answers on
    `Profile`, and are normalized the same way.
    """

    id: str = ""
    first_name: str = ""
    last_name: str = ""
    profile_image: str | None = None
    bio: str | None = None
    timezone: str | None = None
    experience_level: str | None = None
    communication_preferences: str | None = None
    preferred_workout_types: list[str] = Field(default_factory=list)
    fitness_goals: list[str] = Field(default_factory=list)

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_text(cls, v: Any) -> str:
        return "" if v is None else str(v)

    @field_validator("first_name", "last_name", mode="before")
    @classmethod
    def _text(cls, v: Any) -> str:
        return coerce_text(v)

    @field_validator(
        "profile_image", "bio", "timezone", "experience_level", "communication_preferences",
        mode="before",
    )
    @classmethod
    def _optional_text(cls, v: Any) -> str | None:
        return v if isinstance(v, str) and v else None

    @field_validator("preferred_workout_types", "fitness_goals", mode="before")
    @classmethod
    def _string_list(cls, v: Any) -> list[str]:
        return [str(item) for item in coerce_list(v) if item is not None]

    def to_profile(self) -> BuddyProfile:
        return BuddyProfile(
            id=self.id,
            first_name=self.first_name,
            last_name=self.last_name,
            profile_image=self.profile_image,
            bio=self.bio,
        )


class BuddyMatch(BaseModel):
    """A scored candidate."""

    id: str
    user_id: str
    profile: BuddyProfile
    compatibility_score: float = Field(ge=0.0, le=1.0)
    shared_interests: list[str] = Field(default_factory=list)
    timezone_match: bool = False
    activity_level_match: bool = False
    mutual_friends_count: int = 0


class BuddyRequest(BaseModel):
    """A row in friend_requests."""

    id: str
    sender_id: str
    receiver_id: str
    status: Literal["pending", "accepted", "declined", "expired"] = "pending"
    message: str | None = None
    created_at: str | None = None
    updated_at: str | None = None
