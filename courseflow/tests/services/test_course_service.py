# courseflow/tests/services/test_course_service.py
"""tests for courseflow/services/course_service.py"""
# pylint: disable=missing-function-docstring

import pytest

from courseflow.exceptions import CourseNotFoundError, LessonNotFoundError
from courseflow.models import Course
from courseflow.services.course_service import CourseService


class TestCourseService:
    """Loading courses and ordering their lessons."""

    def test_get_course_fills_ids(self, course_service):
        course = course_service.get_course("course_1")
        assert course.id == "course_1"
        assert course.title == "Intro to Prompting"
        assert course.modules["module_a"].id == "module_a"
        assert course.modules["module_a"].lessons["lesson_1"].id == "lesson_1"

    def test_get_course_missing(self, course_service):
        with pytest.raises(CourseNotFoundError):
            course_service.get_course("nope")

    def test_get_course_reads_current_record(self, course_service, seeded_store):
        course_service.get_course("course_1")
        seeded_store.set("courses/course_1/title", "Renamed")
        assert course_service.get_course("course_1").title == "Renamed"

    @pytest.mark.parametrize("course_id", ["a.b", "a$b", "a#b", "a[b]", "a/b"])
    def test_unusable_course_id_is_not_found(self, course_service, course_id):
        with pytest.raises(CourseNotFoundError):
            course_service.get_course(course_id)

    def test_lessons_in_order_uses_module_then_lesson_order(self, course):
        ordered = CourseService.lessons_in_order(course)
        assert [e.lesson_id for e in ordered] == ["lesson_1", "lesson_2", "lesson_3"]
        assert [e.module_id for e in ordered] == ["module_a", "module_a", "module_b"]

    def test_lessons_in_order_breaks_ties_by_id(self):
        course = Course.model_validate(
            {
                "modules": {
                    "m": {"order": 1, "lessons": {"b": {"order": 1}, "a": {"order": 1}}}
                }
            }
        )
        assert [e.lesson_id for e in CourseService.lessons_in_order(course)] == ["a", "b"]

    def test_get_lesson(self, course_service, course):
        lesson = course_service.get_lesson(course, "lesson_2")
        assert lesson.title == "Context"
        assert lesson.recitation_assistant_id == "asst_coach_2"

    def test_get_lesson_missing(self, course_service, course):
        with pytest.raises(LessonNotFoundError):
            course_service.get_lesson(course, "lesson_99")

    def test_navigation_crosses_modules(self, course_service, course):
        navigation = course_service.get_navigation(course, "lesson_2")
        assert navigation.previous_lesson_id == "lesson_1"
        assert navigation.next_lesson_id == "lesson_3"
        assert navigation.current_index == 1
        assert navigation.total_lessons == 3

    def test_navigation_edges(self, course_service, course):
        first = course_service.get_navigation(course, "lesson_1")
        last = course_service.get_navigation(course, "lesson_3")
        assert first.previous_lesson_id is None
        assert last.next_lesson_id is None

    def test_navigation_unknown_lesson(self, course_service, course):
        navigation = course_service.get_navigation(course, "ghost")
        assert navigation.current_index == -1
        assert navigation.next_lesson_id is None

    def test_next_and_first_lesson(self, course_service, course):
        assert course_service.next_lesson_id(course, "lesson_1") == "lesson_2"
        assert course_service.next_lesson_id(course, "lesson_3") is None
        assert course_service.first_lesson_id(course) == "lesson_1"
        assert course_service.first_lesson_id(Course()) is None
