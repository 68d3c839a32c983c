"""
Service layer for the course/lesson tree.

Courses are authored elsewhere and are read-only here. The service loads a
course from ``courses/{courseId}`` and answers ordering questions over it:
the total lesson order, navigation around a lesson, and the "next lesson"
used by the unlock flow.
"""

import logging
from typing import List, Optional

from courseflow.exceptions import (CourseNotFoundError, LessonNotFoundError,
                                   validate_internal_model)
from courseflow.models import Course, Lesson, LessonNavigation, OrderedLesson
from courseflow.services.tree_store import SQLiteTreeStore, is_valid_key

logger = logging.getLogger(__name__)


def course_path(course_id: str) -> str:
    """Tree path of a course record."""
    return f"courses/{course_id}"


class CourseService:
    """
    Provides read access to courses, modules and lessons.
    """

    def __init__(self, store: SQLiteTreeStore):
        """
        Initializes the CourseService.

        Args:
            store: The keyed-tree store.
        """
        self.store = store

    def get_course(self, course_id: str) -> Course:
        """
        Loads a course with all of its modules and lessons.

        Raises:
            CourseNotFoundError: If no course is stored under the id, or the id
                cannot name a course.
        """
        data = self.store.get(course_path(course_id)) if is_valid_key(course_id) else None
        if not isinstance(data, dict):
            logger.warning(f"Course {course_id} not found")
            raise CourseNotFoundError(f"Course not found: {course_id}")
        course = validate_internal_model(
            Course, data, context_message=f"Stored course {course_id} is invalid"
        )
        course.id = course_id
        return course

    @staticmethod
    def lessons_in_order(course: Course) -> List[OrderedLesson]:
        """
        Flattens the course into its total lesson order.

        Modules are ordered by ``order``, then lessons within each module by
        ``order``. Ids break ties so the order is stable.
        """
        ordered: List[OrderedLesson] = []
        modules = sorted(course.modules.values(), key=lambda m: (m.order, m.id))
        for module in modules:
            lessons = sorted(module.lessons.values(), key=lambda l: (l.order, l.id))
            for lesson in lessons:
                ordered.append(
                    OrderedLesson(module_id=module.id, lesson_id=lesson.id, lesson=lesson)
                )
        return ordered

    def get_lesson(self, course: Course, lesson_id: str) -> Lesson:
        """
        Finds a lesson anywhere in the course.

        Raises:
            LessonNotFoundError: If the lesson is not part of the course.
        """
        for module in course.modules.values():
            lesson = module.lessons.get(lesson_id)
            if lesson is not None:
                return lesson
        raise LessonNotFoundError(f"Lesson {lesson_id} not found in course {course.id}")

    def get_navigation(self, course: Course, lesson_id: str) -> LessonNavigation:
        """Returns the lessons before and after ``lesson_id`` in course order."""
        ordered = self.lessons_in_order(course)
        ids = [entry.lesson_id for entry in ordered]
        if lesson_id not in ids:
            return LessonNavigation(total_lessons=len(ids))
        index = ids.index(lesson_id)
        return LessonNavigation(
            previous_lesson_id=ids[index - 1] if index > 0 else None,
            next_lesson_id=ids[index + 1] if index < len(ids) - 1 else None,
            current_index=index,
            total_lessons=len(ids),
        )

    def next_lesson_id(self, course: Course, lesson_id: str) -> Optional[str]:
        """The lesson following ``lesson_id``, or None for the last lesson."""
        return self.get_navigation(course, lesson_id).next_lesson_id

    def first_lesson_id(self, course: Course) -> Optional[str]:
        """The first lesson of the course, or None for an empty course."""
        ordered = self.lessons_in_order(course)
        return ordered[0].lesson_id if ordered else None
