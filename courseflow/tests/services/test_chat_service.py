# courseflow/tests/services/test_chat_service.py
"""tests for courseflow/services/chat_service.py"""
# pylint: disable=missing-function-docstring, redefined-outer-name, protected-access

import asyncio
from typing import List
from unittest.mock import AsyncMock, MagicMock

import pytest

from courseflow.ai.assistant_client import AssistantClient, RunStatus
from courseflow.ai.run_poller import RunPoller
from courseflow.ai.unlock import get_unlock_extractor
from courseflow.exceptions import (CourseNotFoundError, EmptyMessageError,
                                   LessonNotFoundError,
                                   MissingAssistantConfigurationError,
                                   RunFailedError, RunTimeoutError,
                                   UpstreamUnavailableError)
from courseflow.models import ChatType, Sender, SubmitMessageInput
from courseflow.services.chat_service import ChatService
from courseflow.services.notification_service import NotificationService
from courseflow.services.profile_service import profile_path
from courseflow.services.progress_service import progress_path
from courseflow.services.thread_service import thread_path

USER = "user_1"


class FakeSleep:
    """Records sleeps without waiting."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def assistant_client():
    client = MagicMock(spec=AssistantClient)
    client.create_thread = AsyncMock(return_value="thread_new")
    client.add_user_message = AsyncMock(return_value="msg_1")
    client.create_run = AsyncMock(return_value=RunStatus(id="run_1", status="queued"))
    client.retrieve_run = AsyncMock(return_value=RunStatus(id="run_1", status="completed"))
    client.get_reply_text = AsyncMock(return_value="Well done!\nLESSON_UNLOCKED_lesson_2")
    return client


@pytest.fixture
def notifier():
    service = MagicMock(spec=NotificationService)
    service.notify_qna_question = AsyncMock(return_value=True)
    return service


@pytest.fixture
def fake_sleep():
    return FakeSleep()


@pytest.fixture
def chat_service(
    assistant_client,
    notifier,
    fake_sleep,
    course_service,
    profile_service,
    progress_service,
    thread_service,
    ai_settings_service,
):
    return ChatService(
        course_service=course_service,
        profile_service=profile_service,
        progress_service=progress_service,
        thread_service=thread_service,
        ai_settings_service=ai_settings_service,
        assistant_client=assistant_client,
        run_poller=RunPoller(
            assistant_client, interval=2.0, max_attempts=30, max_elapsed=60.0, sleep=fake_sleep
        ),
        unlock_extractor=get_unlock_extractor("strict"),
        notification_service=notifier,
    )


def recitation(message="Prompts should be specific.", **kwargs) -> SubmitMessageInput:
    values = {
        "message": message,
        "chat_type": ChatType.RECITATION,
        "course_id": "course_1",
        "lesson_id": "lesson_1",
        "user_id": USER,
    }
    values.update(kwargs)
    return SubmitMessageInput(**values)


class TestSubmitMessage:
    """The chat/unlock flow end to end against an in-memory store."""

    @pytest.mark.asyncio
    async def test_new_thread_with_unlock(
        self, chat_service, assistant_client, progress_service, thread_service, notifier
    ):
        result = await chat_service.submit_message(recitation())

        assert result.response == "Well done!\nLESSON_UNLOCKED_lesson_2"
        assert result.thread_id == "thread_new"
        assert result.run_id == "run_1"
        assert result.unlock_code == "LESSON_UNLOCKED_lesson_2"
        assert result.next_lesson_id == "lesson_2"

        path = thread_path(USER, "course_1", ChatType.RECITATION, "lesson_1")
        assert thread_service.get_thread(path).assistant_thread_id == "thread_new"
        messages = thread_service.list_messages(path)
        assert [(m.sender, m.text) for m in messages] == [
            (Sender.USER, "Prompts should be specific."),
            (Sender.ASSISTANT, "Well done!\nLESSON_UNLOCKED_lesson_2"),
        ]

        progress = progress_service.get_progress(USER, "course_1")
        assert progress.is_unlocked("lesson_2")
        assert progress.completed_lessons["lesson_1"].unlock_code == "LESSON_UNLOCKED_lesson_2"
        assert progress.last_unlocked_at is not None

        assistant_client.create_thread.assert_awaited_once()
        assistant_client.add_user_message.assert_awaited_once_with(
            "thread_new", "Prompts should be specific."
        )
        assert assistant_client.create_run.await_args.args == ("thread_new", "asst_coach_1")
        notifier.notify_qna_question.assert_not_called()

    @pytest.mark.asyncio
    async def test_message_is_trimmed(self, chat_service, assistant_client):
        await chat_service.submit_message(recitation(message="  hello  "))
        assistant_client.add_user_message.assert_awaited_once_with("thread_new", "hello")

    @pytest.mark.asyncio
    async def test_existing_thread_qna_without_marker(
        self, chat_service, assistant_client, thread_service, seeded_store, notifier
    ):
        assistant_client.get_reply_text.return_value = "Context windows are finite."
        path = thread_path(USER, "course_1", ChatType.QNA, "lesson_1")
        thread_service.claim_thread(path, "thread_old", "course_1", ChatType.QNA, "lesson_1")
        thread_service.append_message(path, Sender.USER, "earlier question")

        result = await chat_service.submit_message(
            recitation(
                message="What is a context window?",
                chat_type=ChatType.QNA,
                existing_thread_id="thread_old",
            )
        )

        assert result.thread_id == "thread_old"
        assert result.unlock_code is None
        assert result.next_lesson_id is None
        assistant_client.create_thread.assert_not_called()
        assert assistant_client.create_run.await_args.args == ("thread_old", "asst_lesson_qna")
        assert len(thread_service.list_messages(path)) == 3
        assert seeded_store.get(progress_path(USER, "course_1") + "/completedLessons") is None
        notifier.notify_qna_question.assert_awaited_once_with(
            USER, "course_1", "lesson_1", "What is a context window?", "thread_old"
        )

    @pytest.mark.asyncio
    async def test_unlock_marker_ignored_outside_recitation(
        self, chat_service, progress_service
    ):
        result = await chat_service.submit_message(recitation(chat_type=ChatType.QNA))
        assert result.unlock_code is None
        assert progress_service.get_progress(USER, "course_1").completed_lessons == {}

    @pytest.mark.asyncio
    async def test_recitation_without_marker_leaves_progress(
        self, chat_service, assistant_client, progress_service
    ):
        assistant_client.get_reply_text.return_value = "Almost! What about examples?"
        result = await chat_service.submit_message(recitation())
        assert result.unlock_code is None
        assert progress_service.get_progress(USER, "course_1").completed_lessons == {}

    @pytest.mark.asyncio
    async def test_stored_thread_is_reused_without_supplied_id(
        self, chat_service, assistant_client, thread_service
    ):
        first = await chat_service.submit_message(recitation())
        assistant_client.create_thread.return_value = "thread_other"
        second = await chat_service.submit_message(recitation(message="again"))
        assert first.thread_id == second.thread_id == "thread_new"
        assistant_client.create_thread.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_resubmitting_with_thread_id_never_creates_a_thread(
        self, chat_service, assistant_client, thread_service
    ):
        for _ in range(3):
            await chat_service.submit_message(recitation(existing_thread_id="thread_client"))
        assistant_client.create_thread.assert_not_called()
        path = thread_path(USER, "course_1", ChatType.RECITATION, "lesson_1")
        assert thread_service.get_thread(path).assistant_thread_id == "thread_client"
        assert len(thread_service.list_messages(path)) == 6

    @pytest.mark.asyncio
    async def test_mismatched_thread_id_uses_recorded_thread(
        self, chat_service, assistant_client, thread_service
    ):
        path = thread_path(USER, "course_1", ChatType.RECITATION, "lesson_1")
        thread_service.claim_thread(path, "thread_recorded", "course_1", ChatType.RECITATION)
        result = await chat_service.submit_message(recitation(existing_thread_id="thread_stale"))
        assert result.thread_id == "thread_recorded"

    @pytest.mark.asyncio
    async def test_concurrent_new_conversations_share_one_thread(
        self, chat_service, assistant_client, thread_service
    ):
        assistant_client.create_thread.side_effect = ["thread_a", "thread_b"]
        assistant_client.get_reply_text.return_value = "Answer"
        submission = recitation(chat_type=ChatType.QNA)

        results = await asyncio.gather(
            chat_service.submit_message(submission), chat_service.submit_message(submission)
        )

        path = thread_path(USER, "course_1", ChatType.QNA, "lesson_1")
        recorded = thread_service.get_thread(path).assistant_thread_id
        assert {r.thread_id for r in results} == {recorded}

    @pytest.mark.asyncio
    async def test_course_level_general_chat(self, chat_service, assistant_client, thread_service):
        assistant_client.get_reply_text.return_value = "Plan two sessions a week."
        result = await chat_service.submit_message(
            recitation(chat_type=ChatType.GENERAL, lesson_id=None, message="How should I study?")
        )
        assert result.chat_type == ChatType.GENERAL
        assert assistant_client.create_run.await_args.args == ("thread_new", "asst_course_qna")
        messages = thread_service.list_messages(f"messagingThreads/course_1/{USER}")
        assert [m.sender for m in messages] == [Sender.USER, Sender.ASSISTANT]

    @pytest.mark.asyncio
    async def test_explicit_assistant_id_overrides(self, chat_service, assistant_client):
        await chat_service.submit_message(recitation(assistant_id="asst_override"))
        assert assistant_client.create_run.await_args.args == ("thread_new", "asst_override")

    @pytest.mark.asyncio
    async def test_instructions_are_personalized(
        self, chat_service, assistant_client, seeded_store
    ):
        seeded_store.set(profile_path(USER), {"firstName": "Ada", "industry": "fintech"})
        await chat_service.submit_message(recitation())
        instructions = assistant_client.create_run.await_args.kwargs["instructions"]
        assert "Ada" in instructions
        assert "fintech" in instructions
        assert "LESSON_UNLOCKED_lesson_1" in instructions
        assert '"Instructions"' in instructions

    @pytest.mark.asyncio
    async def test_global_template_and_run_options(
        self, chat_service, assistant_client, seeded_store
    ):
        seeded_store.set(
            "aiSettings",
            {
                "systemInstructions": {"coachAssistant": {"instructions": "Coach {firstName}"}},
                "globalSettings": {"model": "gpt-4o-mini", "temperature": 0.2, "maxTokens": 400},
            },
        )
        await chat_service.submit_message(recitation())
        kwargs = assistant_client.create_run.await_args.kwargs
        assert kwargs["instructions"] == "Coach Student"
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_tokens"] == 400

    @pytest.mark.asyncio
    async def test_lesson_template_override(self, chat_service, assistant_client, seeded_store):
        seeded_store.set(
            "courses/course_1/modules/module_a/lessons/lesson_1/instructions/coach",
            "Lesson {lessonTitle} coach",
        )
        await chat_service.submit_message(recitation())
        assert assistant_client.create_run.await_args.kwargs["instructions"] == (
            "Lesson Instructions coach"
        )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("message", ["", "   ", "\n\t"])
    async def test_empty_message_makes_no_calls(
        self, chat_service, assistant_client, seeded_store, message
    ):
        before = seeded_store.dump()
        with pytest.raises(EmptyMessageError):
            await chat_service.submit_message(recitation(message=message))
        assistant_client.create_thread.assert_not_called()
        assistant_client.add_user_message.assert_not_called()
        assistant_client.create_run.assert_not_called()
        assert seeded_store.dump() == before

    @pytest.mark.asyncio
    async def test_missing_assistant(self, chat_service, assistant_client, seeded_store):
        with pytest.raises(MissingAssistantConfigurationError):
            await chat_service.submit_message(recitation(lesson_id="lesson_3"))
        with pytest.raises(MissingAssistantConfigurationError):
            await chat_service.submit_message(recitation(lesson_id=None))
        assistant_client.create_thread.assert_not_called()
        assert seeded_store.get(f"users/{USER}") is None

    @pytest.mark.asyncio
    async def test_recitation_without_lesson_never_shares_qna_thread(
        self, chat_service, assistant_client, thread_service
    ):
        await chat_service.submit_message(
            recitation(chat_type=ChatType.QNA, lesson_id=None, message="What is RAG?")
        )
        assistant_client.create_thread.reset_mock()

        with pytest.raises(MissingAssistantConfigurationError):
            await chat_service.submit_message(
                recitation(lesson_id=None, assistant_id="asst_x")
            )

        assistant_client.create_thread.assert_not_called()
        assert assistant_client.add_user_message.await_count == 1
        qna = thread_path(USER, "course_1", ChatType.QNA)
        assert [m.sender for m in thread_service.list_messages(qna)] == [
            Sender.USER,
            Sender.ASSISTANT,
        ]

    @pytest.mark.asyncio
    async def test_unknown_course_and_lesson(self, chat_service):
        with pytest.raises(CourseNotFoundError):
            await chat_service.submit_message(recitation(course_id="nope"))
        with pytest.raises(CourseNotFoundError):
            await chat_service.submit_message(recitation(course_id="a.b"))
        with pytest.raises(LessonNotFoundError):
            await chat_service.submit_message(recitation(lesson_id="nope"))

    @pytest.mark.asyncio
    async def test_run_timeout_keeps_user_turn_and_thread(
        self, chat_service, assistant_client, thread_service, progress_service, fake_sleep
    ):
        assistant_client.retrieve_run.return_value = RunStatus(id="run_1", status="in_progress")

        with pytest.raises(RunTimeoutError) as exc_info:
            await chat_service.submit_message(recitation())

        assert exc_info.value.thread_id == "thread_new"
        assert assistant_client.retrieve_run.await_count == 30
        assert sum(fake_sleep.calls) == pytest.approx(60.0)
        path = thread_path(USER, "course_1", ChatType.RECITATION, "lesson_1")
        assert [m.sender for m in thread_service.list_messages(path)] == [Sender.USER]
        assert thread_service.get_thread(path).assistant_thread_id == "thread_new"
        assert progress_service.get_progress(USER, "course_1").unlocked_lessons == {}
        assistant_client.get_reply_text.assert_not_called()

    @pytest.mark.asyncio
    async def test_run_failed(self, chat_service, assistant_client, progress_service):
        assistant_client.retrieve_run.return_value = RunStatus(
            id="run_1", status="failed", last_error="server_error"
        )
        with pytest.raises(RunFailedError) as exc_info:
            await chat_service.submit_message(recitation())
        assert exc_info.value.status == "failed"
        assert exc_info.value.thread_id == "thread_new"
        assert progress_service.get_progress(USER, "course_1").completed_lessons == {}

    @pytest.mark.asyncio
    async def test_completed_run_without_reply(self, chat_service, assistant_client):
        assistant_client.get_reply_text.return_value = None
        with pytest.raises(RunFailedError) as exc_info:
            await chat_service.submit_message(recitation())
        assert exc_info.value.status == "no_response"

    @pytest.mark.asyncio
    async def test_upstream_failure_on_thread_creation(
        self, chat_service, assistant_client, seeded_store
    ):
        assistant_client.create_thread.side_effect = UpstreamUnavailableError("down")
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await chat_service.submit_message(recitation())
        assert exc_info.value.thread_id is None
        assert seeded_store.get(f"users/{USER}") is None

    @pytest.mark.asyncio
    async def test_upstream_failure_after_thread_resolved(self, chat_service, assistant_client):
        assistant_client.create_run.side_effect = UpstreamUnavailableError("down")
        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await chat_service.submit_message(recitation())
        assert exc_info.value.thread_id == "thread_new"


class TestChatHistory:
    """Reading transcripts back."""

    @pytest.mark.asyncio
    async def test_history_after_submission(self, chat_service):
        await chat_service.submit_message(recitation())
        thread, messages = chat_service.get_history(
            USER, "course_1", ChatType.RECITATION, "lesson_1"
        )
        assert thread.assistant_thread_id == "thread_new"
        assert [m.sender for m in messages] == [Sender.USER, Sender.ASSISTANT]

    def test_empty_history(self, chat_service):
        thread, messages = chat_service.get_history(USER, "course_1", ChatType.QNA)
        assert thread is None
        assert messages == []

    def test_history_unknown_lesson(self, chat_service):
        with pytest.raises(LessonNotFoundError):
            chat_service.get_history(USER, "course_1", ChatType.QNA, "ghost")

    def test_recitation_history_needs_a_lesson(self, chat_service):
        thread, messages = chat_service.get_history(USER, "course_1", ChatType.RECITATION)
        assert thread is None
        assert messages == []
