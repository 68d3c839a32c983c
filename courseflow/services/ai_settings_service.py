"""Service for the administrator-managed assistant settings at ``aiSettings``."""

import logging
from datetime import datetime, timezone
from typing import Optional

from courseflow.exceptions import PermissionDeniedError, validate_internal_model
from courseflow.models import AiSettings, GlobalSettings, PersonaInstructions, UserProfile
from courseflow.services.tree_store import SQLiteTreeStore

logger = logging.getLogger(__name__)

AI_SETTINGS_PATH = "aiSettings"

SETTINGS_EDITOR_ROLES = frozenset({"admin", "instructor"})


class AiSettingsService:
    """Reads and replaces the instruction templates and global run options."""

    def __init__(self, store: SQLiteTreeStore):
        self.store = store

    def get_settings(self) -> AiSettings:
        """Returns the current settings; defaults if none were ever saved."""
        data = self.store.get(AI_SETTINGS_PATH)
        if not isinstance(data, dict):
            return AiSettings()
        return validate_internal_model(
            AiSettings, data, context_message="Stored AI settings are invalid"
        )

    def update_settings(
        self,
        editor_id: str,
        editor_profile: Optional[UserProfile],
        system_instructions: dict[str, PersonaInstructions],
        global_settings: GlobalSettings,
    ) -> AiSettings:
        """
        Replaces the settings.

        Raises:
            PermissionDeniedError: If the editor is not an admin or instructor.
        """
        role = editor_profile.role if editor_profile else None
        if role not in SETTINGS_EDITOR_ROLES:
            logger.warning(f"User {editor_id} with role {role!r} tried to update AI settings")
            raise PermissionDeniedError("Only administrators can update AI settings.")

        settings = AiSettings(
            system_instructions=system_instructions,
            global_settings=global_settings,
            last_updated=datetime.now(timezone.utc).isoformat(),
            updated_by=editor_id,
        )
        self.store.set(AI_SETTINGS_PATH, settings.to_store())
        logger.info(f"AI settings updated by {editor_id}")
        return settings
