# courseflow/routers/progress_router.py
"""fastApi router for user progress"""

import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from courseflow.dependencies import (get_course_service, get_current_user,
                                     get_progress_service)
from courseflow.exceptions import CourseNotFoundError, InvalidUnlockCodeError, LessonNotFoundError
from courseflow.models import CamelModel, CompletedLesson, Course, CourseProgressSummary, User
from courseflow.services.course_service import CourseService
from courseflow.services.progress_service import ProgressService

router = APIRouter()
logger = logging.getLogger(__name__)

# --- Pydantic Models ---


# pylint: disable=too-few-public-methods
class CourseProgress(CamelModel):
    """Progress summary for an enrolled course."""

    course_id: str
    title: str
    summary: CourseProgressSummary
    last_unlocked_at: Optional[str] = None


# pylint: disable=too-few-public-methods
class CourseListResponse(CamelModel):
    """Response model for listing the courses the user is enrolled in."""

    courses: List[CourseProgress]


# pylint: disable=too-few-public-methods
class ProgressResponse(CamelModel):
    """The caller's progress record for one course, with statistics."""

    course_id: str
    unlocked_lessons: Dict[str, bool]
    completed_lessons: Dict[str, CompletedLesson]
    last_unlocked_at: Optional[str] = None
    summary: CourseProgressSummary


# pylint: disable=too-few-public-methods
class UnlockRequest(CamelModel):
    """Request model for redeeming an unlock code."""

    current_lesson_id: str
    unlock_code: str


# pylint: disable=too-few-public-methods
class UnlockResponse(CamelModel):
    """Response model for a redeemed unlock code."""

    message: str
    next_lesson_id: Optional[str] = None


def _load_course(course_service: CourseService, course_id: str) -> Course:
    try:
        return course_service.get_course(course_id)
    except CourseNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e


def _progress_response(
    progress_service: ProgressService, course: Course, user_id: str
) -> ProgressResponse:
    progress = progress_service.get_progress(user_id, course.id)
    return ProgressResponse(
        course_id=course.id,
        unlocked_lessons=progress.unlocked_lessons,
        completed_lessons=progress.completed_lessons,
        last_unlocked_at=progress.last_unlocked_at,
        summary=progress_service.calculate_course_progress(course, progress),
    )


# --- Progress Routes ---


@router.get("/courses", response_model=CourseListResponse)
async def get_user_courses(
    current_user: User = Depends(get_current_user),
    progress_service: ProgressService = Depends(get_progress_service),
) -> CourseListResponse:
    """
    Retrieves the courses the user is enrolled in, with progress statistics.
    """
    courses = progress_service.list_enrolled_courses(current_user.user_id)
    logger.info(f"User {current_user.user_id} is enrolled in {len(courses)} course(s)")
    return CourseListResponse(courses=[CourseProgress(**course) for course in courses])


@router.get("/{course_id}", response_model=ProgressResponse)
async def get_course_progress(
    course_id: str,
    current_user: User = Depends(get_current_user),
    course_service: CourseService = Depends(get_course_service),
    progress_service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    """
    Returns the caller's unlocked/completed lessons for a course.

    Raises:
        HTTPException (404): If the course does not exist.
    """
    course = _load_course(course_service, course_id)
    return _progress_response(progress_service, course, current_user.user_id)


@router.post("/{course_id}/enroll", response_model=ProgressResponse)
async def enroll_in_course(
    course_id: str,
    current_user: User = Depends(get_current_user),
    course_service: CourseService = Depends(get_course_service),
    progress_service: ProgressService = Depends(get_progress_service),
) -> ProgressResponse:
    """
    Enrolls the caller in a course, unlocking its first lesson.

    Raises:
        HTTPException (404): If the course does not exist.
    """
    course = _load_course(course_service, course_id)
    progress_service.enroll(current_user.user_id, course)
    return _progress_response(progress_service, course, current_user.user_id)


@router.post("/{course_id}/unlock", response_model=UnlockResponse)
async def redeem_unlock_code(
    course_id: str,
    request: UnlockRequest,
    current_user: User = Depends(get_current_user),
    course_service: CourseService = Depends(get_course_service),
    progress_service: ProgressService = Depends(get_progress_service),
) -> UnlockResponse:
    """
    Unlocks the next lesson with a code the learner received from the coach.

    Raises:
        HTTPException (400): If the code is empty or wrong.
        HTTPException (404): If the course or lesson does not exist.
    """
    course = _load_course(course_service, course_id)
    try:
        course_service.get_lesson(course, request.current_lesson_id)
        next_lesson_id = progress_service.redeem_unlock_code(
            current_user.user_id, course, request.current_lesson_id, request.unlock_code
        )
    except LessonNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except InvalidUnlockCodeError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    if next_lesson_id is None:
        return UnlockResponse(message="Congratulations! You have completed the course.")
    return UnlockResponse(
        message="Lesson unlocked successfully!", next_lesson_id=next_lesson_id
    )
