"""fastApi router for administrator AI settings"""

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import Field

from courseflow.dependencies import (get_ai_settings_service, get_current_user,
                                     get_profile_service)
from courseflow.exceptions import PermissionDeniedError
from courseflow.models import AiSettings, CamelModel, GlobalSettings, PersonaInstructions, User
from courseflow.services.ai_settings_service import AiSettingsService
from courseflow.services.profile_service import ProfileService

router = APIRouter()


# pylint: disable=too-few-public-methods
class AiSettingsUpdate(CamelModel):
    """Request body replacing the AI settings."""

    system_instructions: Dict[str, PersonaInstructions] = Field(default_factory=dict)
    global_settings: GlobalSettings = Field(default_factory=GlobalSettings)


@router.get("/ai", response_model=AiSettings)
async def get_ai_settings(
    current_user: User = Depends(get_current_user),  # pylint: disable=unused-argument
    settings_service: AiSettingsService = Depends(get_ai_settings_service),
) -> AiSettings:
    """Returns the instruction templates and global run options."""
    return settings_service.get_settings()


@router.put("/ai", response_model=AiSettings)
async def update_ai_settings(
    update: AiSettingsUpdate,
    current_user: User = Depends(get_current_user),
    settings_service: AiSettingsService = Depends(get_ai_settings_service),
    profile_service: ProfileService = Depends(get_profile_service),
) -> AiSettings:
    """
    Replaces the AI settings.

    Raises:
        HTTPException (403): If the caller is not an administrator or instructor.
    """
    try:
        return settings_service.update_settings(
            current_user.user_id,
            profile_service.get_profile(current_user.user_id),
            update.system_instructions,
            update.global_settings,
        )
    except PermissionDeniedError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
