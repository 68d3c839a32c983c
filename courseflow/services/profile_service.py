"""
Service for learner profiles: onboarding, engagement tracking and the
personalization context used by assistant instructions.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from courseflow.exceptions import validate_internal_model
from courseflow.models import OnboardingForm, PersonalizationContext, UserProfile
from courseflow.services.cache import KeyValueCache
from courseflow.services.tree_store import SQLiteTreeStore

logger = logging.getLogger(__name__)

DEFAULT_FIRST_NAME = "Student"
DEFAULT_EXPERIENCE_LEVEL = "beginner"
DEFAULT_INDUSTRY = "general"
DEFAULT_CURRENT_ROLE = "learner"
DEFAULT_COURSE_ID = "current_course"
DEFAULT_LESSON_ID = "current_lesson"


def profile_path(user_id: str) -> str:
    """Tree path of a user's profile record."""
    return f"users/{user_id}/profile"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProfileService:
    """Reads and writes ``users/{userId}/profile`` through a read-through cache."""

    def __init__(
        self,
        store: SQLiteTreeStore,
        cache: Optional[KeyValueCache[UserProfile]] = None,
    ):
        """
        Initializes the ProfileService.

        Args:
            store: The keyed-tree store.
            cache: Profile cache; a private one is created if not supplied.
        """
        self.store = store
        self.cache: KeyValueCache[UserProfile] = cache if cache is not None else KeyValueCache()

    def _load(self, user_id: str) -> Optional[UserProfile]:
        data = self.store.get(profile_path(user_id))
        if not isinstance(data, dict):
            return None
        return self._to_profile(user_id, data)

    @staticmethod
    def _to_profile(user_id: str, data: Dict[str, Any]) -> UserProfile:
        profile = validate_internal_model(
            UserProfile, data, context_message=f"Stored profile for user {user_id} is invalid"
        )
        profile.user_id = user_id
        return profile

    def get_profile(self, user_id: str) -> Optional[UserProfile]:
        """
        Returns the user's profile, or None if the user has none yet.
        """
        return self.cache.get_or_load(user_id, lambda: self._load(user_id))

    def save_onboarding(self, user_id: str, form: OnboardingForm) -> UserProfile:
        """
        Merges the supplied onboarding fields into the profile.

        Creates the profile on first use. Fields left out of the form are untouched.
        """
        now = _now_iso()
        changes: Dict[str, Any] = form.to_store()
        changes["updatedAt"] = now

        def _merge(current: Any) -> Dict[str, Any]:
            merged = dict(current) if isinstance(current, dict) else {}
            merged.setdefault("createdAt", now)
            merged.update(changes)
            return merged

        written = self.store.transaction(profile_path(user_id), _merge)
        self.cache.invalidate(user_id)
        logger.info(f"Saved onboarding fields {sorted(changes)} for user {user_id}")
        return self._to_profile(user_id, written)

    def record_session(self, user_id: str) -> UserProfile:
        """
        Engagement tracker: counts a learning session for the user.
        """
        now = _now_iso()

        def _increment(current: Any) -> Dict[str, Any]:
            record = dict(current) if isinstance(current, dict) else {"createdAt": now}
            record["totalSessions"] = int(record.get("totalSessions") or 0) + 1
            record["lastSessionDate"] = now
            return record

        written = self.store.transaction(profile_path(user_id), _increment)
        self.cache.invalidate(user_id)
        profile = self._to_profile(user_id, written)
        logger.debug(f"User {user_id} session count is now {profile.total_sessions}")
        return profile

    @staticmethod
    def build_personalization_context(
        profile: Optional[UserProfile],
        course_id: Optional[str] = None,
        lesson_id: Optional[str] = None,
        course_title: str = "",
        lesson_title: str = "",
    ) -> PersonalizationContext:
        """
        Builds the values used to personalize assistant instructions.

        Missing profile fields fall back to neutral defaults so templates always
        render.
        """
        profile = profile or UserProfile()
        return PersonalizationContext(
            first_name=profile.first_name or DEFAULT_FIRST_NAME,
            last_name=profile.last_name or "",
            current_role=profile.current_role or DEFAULT_CURRENT_ROLE,
            experience_level=profile.experience_level or DEFAULT_EXPERIENCE_LEVEL,
            industry=profile.industry or DEFAULT_INDUSTRY,
            primary_goals=list(profile.primary_goals),
            course_id=course_id or DEFAULT_COURSE_ID,
            lesson_id=lesson_id or DEFAULT_LESSON_ID,
            course_title=course_title,
            lesson_title=lesson_title,
        )
