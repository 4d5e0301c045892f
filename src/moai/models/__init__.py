"""
Moai - Models for Supabase rows.
"""

from moai.models.buddy import BuddyCandidate, BuddyMatch, BuddyPreferences, BuddyProfile, BuddyRequest
from moai.models.profile import Profile

__all__ = [
    "Profile",
    "BuddyPreferences",
    "BuddyCandidate",
    "BuddyProfile",
    "BuddyMatch",
    "BuddyRequest",
]
