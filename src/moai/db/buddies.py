"""
Moai - Buddy store.

Finds accountability-buddy candidates among other profiles and records
buddy requests in `friend_requests`.

Compatibility weights:
    timezone              0.25
    workout types         0.30  (share of overlapping types)
    experience level      0.20  (0.10 for adjacent levels)
    communication style   0.15
    fitness goals         0.10  (share of overlapping goals)
"""

import logging
from typing import Any

from moai.db.adapter import DatabaseAdapter
from moai.db.errors import StoreError
from moai.models.buddy import BuddyCandidate, BuddyMatch, BuddyPreferences, BuddyRequest
from moai.models.profile import coerce_list

logger = logging.getLogger(__name__)

PROFILES_TABLE = "profiles"
FRIEND_REQUESTS_TABLE = "friend_requests"

CANDIDATE_COLUMNS = (
    "id, first_name, last_name, profile_image, bio, timezone, fitness_goals, "
    "experience_level, preferred_workout_types, communication_preferences"
)
CANDIDATE_LIMIT = 20

ADJACENT_LEVELS = {
    frozenset({"beginner", "intermediate"}),
    frozenset({"intermediate", "advanced"}),
}


def find_shared_interests(first: Any, second: Any) -> list[str]:
    """Items present in both lists, in the order of the first. JSON-encoded lists are decoded."""
    other = set(coerce_list(second))
    return [item for item in coerce_list(first) if item in other]


def _overlap(first: list[str], second: list[str]) -> float:
    shared = find_shared_interests(first, second)
    return len(shared) / max(len(first) or 1, len(second) or 1)


def calculate_compatibility_score(
    user: BuddyCandidate, candidate: BuddyCandidate, preferences: BuddyPreferences
) -> float:
    """
    Weighted 0..1 compatibility between a user and a candidate profile.

    The searching user's stated preferences stand in for profile columns
    they haven't filled in.
    """
    user_timezone = user.timezone or preferences.timezone
    user_workouts = user.preferred_workout_types or preferences.workout_types
    user_level = user.experience_level or preferences.experience_level
    user_comms = user.communication_preferences or preferences.communication_style
    user_goals = user.fitness_goals or preferences.fitness_goals

    score = 0.0
    if user_timezone and user_timezone == candidate.timezone:
        score += 0.25

    score += _overlap(user_workouts, candidate.preferred_workout_types) * 0.30

    if user_level and user_level == candidate.experience_level:
        score += 0.20
    elif frozenset({user_level, candidate.experience_level}) in ADJACENT_LEVELS:
        score += 0.10

    if user_comms and user_comms == candidate.communication_preferences:
        score += 0.15

    score += _overlap(user_goals, candidate.fitness_goals) * 0.10

    return round(min(score, 1.0), 4)


class BuddyStore:
    """Buddy matching data access bound to an explicitly constructed client."""

    def __init__(self, client: DatabaseAdapter):
        self._client = client

    async def _connected_user_ids(self, user_id: str) -> set[str]:
        """Users with a pending or accepted request to/from this user."""
        response = (
            self._client.table(FRIEND_REQUESTS_TABLE)
            .select("sender_id, receiver_id")
            .or_(f"sender_id.eq.{user_id},receiver_id.eq.{user_id}")
            .in_("status", ["pending", "accepted"])
            .execute()
        )
        connected = set()
        for row in response.data or []:
            other = row["receiver_id"] if row["sender_id"] == user_id else row["sender_id"]
            connected.add(other)
        return connected

    async def find_potential_matches(self, user_id: str, preferences: BuddyPreferences) -> list[BuddyMatch]:
        """Candidates scored against the user, best first."""
        try:
            user_resp = (
                self._client.table(PROFILES_TABLE)
                .select(CANDIDATE_COLUMNS)
                .eq("id", user_id)
                .maybe_single()
                .execute()
            )
            user_row: dict[str, Any] = (user_resp.data if user_resp is not None else None) or {}

            excluded = await self._connected_user_ids(user_id)

            candidates_resp = (
                self._client.table(PROFILES_TABLE)
                .select(CANDIDATE_COLUMNS)
                .neq("id", user_id)
                .limit(CANDIDATE_LIMIT + len(excluded))
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to find buddy candidates for {user_id}: {e}", "find_potential_matches") from e

        user = BuddyCandidate.model_validate(user_row)
        user_workouts = user.preferred_workout_types or preferences.workout_types
        user_timezone = user.timezone or preferences.timezone
        user_level = user.experience_level or preferences.experience_level

        matches = []
        for row in candidates_resp.data or []:
            candidate = BuddyCandidate.model_validate(row)
            if not candidate.id or candidate.id in excluded:
                continue
            matches.append(BuddyMatch(
                id=candidate.id,
                user_id=candidate.id,
                profile=candidate.to_profile(),
                compatibility_score=calculate_compatibility_score(user, candidate, preferences),
                shared_interests=find_shared_interests(user_workouts, candidate.preferred_workout_types),
                timezone_match=bool(candidate.timezone) and candidate.timezone == user_timezone,
                activity_level_match=bool(user_level) and user_level == candidate.experience_level,
            ))

        matches.sort(key=lambda m: m.compatibility_score, reverse=True)
        logger.info(f"Found {len(matches)} buddy candidates for user {user_id}")
        return matches[:CANDIDATE_LIMIT]

    async def send_buddy_request(self, user_id: str, receiver_id: str, message: str | None = None) -> BuddyRequest:
        """
        Create a pending buddy request.

        Raises StoreError if a request between the two users already exists.
        """
        try:
            existing = (
                self._client.table(FRIEND_REQUESTS_TABLE)
                .select("id")
                .or_(
                    f"and(sender_id.eq.{user_id},receiver_id.eq.{receiver_id}),"
                    f"and(sender_id.eq.{receiver_id},receiver_id.eq.{user_id})"
                )
                .execute()
            )
        except Exception as e:
            raise StoreError(f"Failed to check existing buddy requests: {e}", "send_buddy_request") from e

        if existing.data:
            raise StoreError("Buddy request already exists", "send_buddy_request")

        row = {
            "sender_id": user_id,
            "receiver_id": receiver_id,
            "status": "pending",
            "message": message,
        }
        try:
            response = self._client.table(FRIEND_REQUESTS_TABLE).insert(row).execute()
        except Exception as e:
            raise StoreError(f"Failed to send buddy request: {e}", "send_buddy_request") from e

        logger.info(f"Buddy request sent from {user_id} to {receiver_id}")
        return BuddyRequest.model_validate(response.data[0])
