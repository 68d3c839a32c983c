"""
Service for per-user, per-course progress records.

Progress lives at ``users/{userId}/enrollments/{courseId}/progress``. The
unlocked and completed sets only ever grow: nothing in this module removes a
lesson id from either, and completing a lesson always unlocks it too.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from courseflow.exceptions import (CourseNotFoundError, InvalidUnlockCodeError,
                                   validate_internal_model)
from courseflow.models import Course, CourseProgressSummary, ProgressRecord
from courseflow.services.course_service import CourseService
from courseflow.services.tree_store import SQLiteTreeStore

logger = logging.getLogger(__name__)


def enrollments_path(user_id: str) -> str:
    """Tree path of all of a user's enrollments."""
    return f"users/{user_id}/enrollments"


def progress_path(user_id: str, course_id: str) -> str:
    """Tree path of a user's progress record in one course."""
    return f"{enrollments_path(user_id)}/{course_id}/progress"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _has_completion(record: Any, lesson_id: str) -> bool:
    """True if a stored progress record already has a completion entry for the lesson."""
    if not isinstance(record, dict):
        return False
    completed = record.get("completedLessons")
    return isinstance(completed, dict) and bool(completed.get(lesson_id))


class ProgressService:
    """
    Reads and mutates progress records.
    """

    def __init__(self, store: SQLiteTreeStore, course_service: CourseService):
        """
        Initializes the ProgressService.

        Args:
            store: The keyed-tree store.
            course_service: Used to resolve lesson order.
        """
        self.store = store
        self.course_service = course_service

    def get_progress(self, user_id: str, course_id: str) -> ProgressRecord:
        """Returns the progress record, empty if the user has none for the course."""
        data = self.store.get(progress_path(user_id, course_id))
        if not isinstance(data, dict):
            return ProgressRecord()
        return validate_internal_model(
            ProgressRecord,
            data,
            context_message=f"Stored progress for {user_id}/{course_id} is invalid",
        )

    def enroll(self, user_id: str, course: Course) -> ProgressRecord:
        """
        Creates the progress record with the first lesson unlocked.

        Safe to call repeatedly; existing progress is kept.
        """
        first_lesson_id = self.course_service.first_lesson_id(course)
        now = _now_iso()

        def _enroll(current: Any) -> Dict[str, Any]:
            record = current if isinstance(current, dict) else {}
            changes: Dict[str, Any] = {}
            if not record.get("enrolledAt"):
                changes["enrolledAt"] = now
            if first_lesson_id:
                changes[f"unlockedLessons/{first_lesson_id}"] = True
            return changes

        self.store.transaction_update(progress_path(user_id, course.id), _enroll)
        logger.info(f"User {user_id} enrolled in course {course.id}")
        return self.get_progress(user_id, course.id)

    def unlock_lesson(self, user_id: str, course_id: str, lesson_id: str) -> None:
        """Adds a lesson id to the unlocked set."""
        self.store.set(
            f"{progress_path(user_id, course_id)}/unlockedLessons/{lesson_id}", True
        )
        logger.info(f"Unlocked lesson {lesson_id} for user {user_id} in course {course_id}")

    def complete_lesson(
        self,
        user_id: str,
        course_id: str,
        lesson_id: str,
        unlock_code: Optional[str] = None,
    ) -> None:
        """
        Adds a lesson id to the completed set (and to the unlocked set).

        An existing completion entry is kept as is.
        """
        base = progress_path(user_id, course_id)
        now = _now_iso()

        def _complete(current: Any) -> Dict[str, Any]:
            changes: Dict[str, Any] = {f"unlockedLessons/{lesson_id}": True}
            if not _has_completion(current, lesson_id):
                entry: Dict[str, Any] = {"completedAt": now}
                if unlock_code:
                    entry["unlockCode"] = unlock_code
                changes[f"completedLessons/{lesson_id}"] = entry
            return changes

        self.store.transaction_update(base, _complete)
        logger.info(f"Completed lesson {lesson_id} for user {user_id} in course {course_id}")

    def apply_unlock(
        self, user_id: str, course: Course, lesson_id: str, unlock_code: str
    ) -> Optional[str]:
        """
        Records a successful recitation on ``lesson_id``.

        Completes the current lesson with the unlock code, unlocks the next
        lesson in course order and stamps ``lastUnlockedAt``, all in one
        transaction.

        Returns:
            The id of the lesson that was unlocked, or None if ``lesson_id`` is
            the last lesson of the course.
        """
        next_lesson_id = self.course_service.next_lesson_id(course, lesson_id)
        now = _now_iso()

        def _apply(current: Any) -> Dict[str, Any]:
            changes: Dict[str, Any] = {
                f"unlockedLessons/{lesson_id}": True,
                "lastUnlockedAt": now,
            }
            if not _has_completion(current, lesson_id):
                changes[f"completedLessons/{lesson_id}"] = {
                    "completedAt": now,
                    "unlockCode": unlock_code,
                }
            if next_lesson_id:
                changes[f"unlockedLessons/{next_lesson_id}"] = True
            return changes

        self.store.transaction_update(progress_path(user_id, course.id), _apply)
        logger.info(
            f"Unlock code {unlock_code} accepted for user {user_id} on lesson {lesson_id}; "
            f"next lesson: {next_lesson_id}"
        )
        return next_lesson_id

    def redeem_unlock_code(
        self, user_id: str, course: Course, current_lesson_id: str, unlock_code: str
    ) -> Optional[str]:
        """
        Accepts an unlock code typed in by the learner on the lesson page.

        The code must match the one recorded when the current lesson's
        recitation was completed. Redeeming unlocks the next lesson again,
        which is a no-op if it already is.

        Returns:
            The next lesson id, or None if the current lesson is the last one.

        Raises:
            InvalidUnlockCodeError: If the code is empty or does not match.
        """
        code = unlock_code.strip()
        if not code:
            raise InvalidUnlockCodeError("Please enter a code.")
        progress = self.get_progress(user_id, course.id)
        entry = progress.completed_lessons.get(current_lesson_id)
        if entry is None or not entry.unlock_code or entry.unlock_code != code:
            logger.info(
                f"Rejected unlock code for user {user_id} on lesson {current_lesson_id}"
            )
            raise InvalidUnlockCodeError("Invalid unlock code.")

        next_lesson_id = self.course_service.next_lesson_id(course, current_lesson_id)
        if next_lesson_id:
            self.unlock_lesson(user_id, course.id, next_lesson_id)
        return next_lesson_id

    def calculate_course_progress(
        self, course: Course, progress: ProgressRecord
    ) -> CourseProgressSummary:
        """
        Counts unlocked and completed lessons of the course.

        Ids in the progress record that are not part of the course are ignored.
        """
        lesson_ids = [e.lesson_id for e in self.course_service.lessons_in_order(course)]
        total = len(lesson_ids)
        if total == 0:
            return CourseProgressSummary()
        unlocked = sum(1 for l in lesson_ids if progress.is_unlocked(l))
        completed = sum(1 for l in lesson_ids if progress.is_completed(l))
        return CourseProgressSummary(
            total_lessons=total,
            unlocked_lessons=unlocked,
            completed_lessons=completed,
            progress_percentage=round(unlocked / total * 100),
            completion_percentage=round(completed / total * 100),
        )

    def list_enrolled_courses(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Summarizes progress for every course the user is enrolled in.

        Enrollments pointing at courses that no longer exist are skipped.
        """
        summaries: List[Dict[str, Any]] = []
        for course_id in self.store.child_keys(enrollments_path(user_id)):
            try:
                course = self.course_service.get_course(course_id)
            except CourseNotFoundError:
                logger.warning(f"User {user_id} is enrolled in missing course {course_id}")
                continue
            progress = self.get_progress(user_id, course_id)
            summaries.append(
                {
                    "course_id": course_id,
                    "title": course.title,
                    "summary": self.calculate_course_progress(course, progress),
                    "last_unlocked_at": progress.last_unlocked_at,
                }
            )
        return summaries
