"""Pytest configuration file for courseflow tests.

Sets environment variables needed before the application modules are imported
and provides shared fixtures: an in-memory store seeded with a small course,
and the services built on top of it.
"""
# pylint: disable=redefined-outer-name

import os
from typing import Any, Dict, Generator

import pytest

from courseflow.services.ai_settings_service import AiSettingsService
from courseflow.services.course_service import CourseService
from courseflow.services.profile_service import ProfileService
from courseflow.services.progress_service import ProgressService
from courseflow.services.thread_service import ThreadService
from courseflow.services.tree_store import SQLiteTreeStore

TEST_SECRET_KEY = "test-secret-key"


def pytest_configure(config):  # pylint: disable=unused-argument
    """Sets the test environment before tests run."""
    os.environ["RUNNING_TESTS"] = "true"
    os.environ["COURSEFLOW_DB_PATH"] = ":memory:"
    os.environ["SECRET_KEY"] = TEST_SECRET_KEY
    os.environ.pop("NO_AUTH", None)
    os.environ.pop("QNA_WEBHOOK_URL", None)


SAMPLE_COURSE: Dict[str, Any] = {
    "title": "Intro to Prompting",
    "description": "Learn to talk to models.",
    "qnaAssistantId": "asst_course_qna",
    "modules": {
        "module_b": {
            "title": "Advanced",
            "order": 2,
            "lessons": {
                "lesson_3": {"title": "Chains", "order": 1},
            },
        },
        "module_a": {
            "title": "Basics",
            "order": 1,
            "lessons": {
                "lesson_2": {
                    "title": "Context",
                    "order": 2,
                    "recitationAssistantId": "asst_coach_2",
                },
                "lesson_1": {
                    "title": "Instructions",
                    "order": 1,
                    "content": "Be specific.",
                    "recitationAssistantId": "asst_coach_1",
                    "qnaAssistantId": "asst_lesson_qna",
                },
            },
        },
    },
}


@pytest.fixture
def store() -> Generator[SQLiteTreeStore, None, None]:
    """An empty in-memory tree store."""
    tree_store = SQLiteTreeStore(":memory:")
    yield tree_store
    tree_store.close()


@pytest.fixture
def seeded_store(store):
    """The store with ``courses/course_1`` populated."""
    store.set("courses/course_1", SAMPLE_COURSE)
    return store


@pytest.fixture
def course_service(seeded_store):
    return CourseService(seeded_store)


@pytest.fixture
def course(course_service):
    return course_service.get_course("course_1")


@pytest.fixture
def progress_service(seeded_store, course_service):
    return ProgressService(seeded_store, course_service)


@pytest.fixture
def profile_service(seeded_store):
    return ProfileService(seeded_store)


@pytest.fixture
def thread_service(seeded_store):
    return ThreadService(seeded_store)


@pytest.fixture
def ai_settings_service(seeded_store):
    return AiSettingsService(seeded_store)
