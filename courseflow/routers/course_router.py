"""fastApi router for courses and lessons"""

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from courseflow.dependencies import (get_course_service, get_current_user,
                                     get_progress_service)
from courseflow.exceptions import CourseNotFoundError, LessonNotFoundError
from courseflow.models import CamelModel, LessonNavigation, User
from courseflow.services.course_service import CourseService
from courseflow.services.progress_service import ProgressService

router = APIRouter()

# --- Pydantic Models ---


# pylint: disable=too-few-public-methods
class LessonSummary(CamelModel):
    """A lesson's place in the course outline."""

    module_id: str
    lesson_id: str
    title: str
    order: int


# pylint: disable=too-few-public-methods
class CourseResponse(CamelModel):
    """Course header and its lessons in order."""

    course_id: str
    title: str
    description: str
    lessons: List[LessonSummary]


# pylint: disable=too-few-public-methods
class NavigationResponse(CamelModel):
    """Lessons around the current one."""

    previous_lesson_id: Optional[str] = None
    next_lesson_id: Optional[str] = None
    current_index: int
    total_lessons: int

    @classmethod
    def from_navigation(cls, navigation: LessonNavigation) -> "NavigationResponse":
        """Builds the response from the service's navigation model."""
        return cls(**navigation.model_dump())


# pylint: disable=too-few-public-methods
class LessonResponse(CamelModel):
    """A lesson with navigation and the caller's unlock state."""

    course_id: str
    lesson_id: str
    title: str
    video_url: Optional[str] = None
    content: Optional[str] = None
    navigation: NavigationResponse
    is_unlocked: bool
    is_completed: bool


# --- API Routes ---


@router.get("/{course_id}", response_model=CourseResponse)
async def get_course(
    course_id: str,
    current_user: User = Depends(get_current_user),  # pylint: disable=unused-argument
    course_service: CourseService = Depends(get_course_service),
) -> CourseResponse:
    """
    Returns a course outline.

    Raises:
        HTTPException (404): If the course does not exist.
    """
    try:
        course = course_service.get_course(course_id)
    except CourseNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return CourseResponse(
        course_id=course.id,
        title=course.title,
        description=course.description,
        lessons=[
            LessonSummary(
                module_id=entry.module_id,
                lesson_id=entry.lesson_id,
                title=entry.lesson.title,
                order=entry.lesson.order,
            )
            for entry in course_service.lessons_in_order(course)
        ],
    )


@router.get("/{course_id}/lessons/{lesson_id}", response_model=LessonResponse)
async def get_lesson(
    course_id: str,
    lesson_id: str,
    current_user: User = Depends(get_current_user),
    course_service: CourseService = Depends(get_course_service),
    progress_service: ProgressService = Depends(get_progress_service),
) -> LessonResponse:
    """
    Returns a lesson with previous/next navigation and the caller's progress flags.

    Raises:
        HTTPException (404): If the course or lesson does not exist.
    """
    try:
        course = course_service.get_course(course_id)
        lesson = course_service.get_lesson(course, lesson_id)
    except (CourseNotFoundError, LessonNotFoundError) as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    progress = progress_service.get_progress(current_user.user_id, course_id)
    return LessonResponse(
        course_id=course_id,
        lesson_id=lesson_id,
        title=lesson.title,
        video_url=lesson.video_url,
        content=lesson.content,
        navigation=NavigationResponse.from_navigation(
            course_service.get_navigation(course, lesson_id)
        ),
        is_unlocked=progress.is_unlocked(lesson_id),
        is_completed=progress.is_completed(lesson_id),
    )
