"""fastApi router for the learner profile and onboarding"""

from fastapi import APIRouter, Depends, HTTPException, status

from courseflow.dependencies import get_current_user, get_profile_service
from courseflow.logger import logger
from courseflow.models import OnboardingForm, User, UserProfile
from courseflow.services.profile_service import ProfileService

router = APIRouter()


@router.get("", response_model=UserProfile)
async def get_profile(
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    """
    Returns the caller's profile.

    Raises:
        HTTPException (404): If the caller has not been onboarded yet.
    """
    profile = profile_service.get_profile(current_user.user_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found"
        )
    return profile


@router.put("/onboarding", response_model=UserProfile)
async def save_onboarding(
    form: OnboardingForm,
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    """Saves the onboarding form fields supplied in the body."""
    logger.info(f"Saving onboarding for user {current_user.user_id}")
    return profile_service.save_onboarding(current_user.user_id, form)


@router.post("/sessions", response_model=UserProfile)
async def record_session(
    current_user: User = Depends(get_current_user),
    profile_service: ProfileService = Depends(get_profile_service),
) -> UserProfile:
    """Counts a learning session for the caller."""
    return profile_service.record_session(current_user.user_id)
