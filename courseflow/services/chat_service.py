"""
Orchestrates one chat submission: from the learner's message to the
assistant's reply, the unlock check and the persisted transcript.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from courseflow import config
from courseflow.ai.assistant_client import AssistantClient
from courseflow.ai.chat_modes import ChatMode, get_chat_mode
from courseflow.ai.prompt_loader import render_template
from courseflow.ai.run_poller import RunPoller
from courseflow.ai.unlock import UnlockCodeExtractor, get_unlock_extractor
from courseflow.exceptions import (ChatError, EmptyMessageError,
                                   MissingAssistantConfigurationError,
                                   RunFailedError)
from courseflow.models import (AiSettings, ChatMessage, ChatResult, ChatType, Course,
                               ConversationThread, Lesson, Sender,
                               SubmitMessageInput)
from courseflow.services.ai_settings_service import AiSettingsService
from courseflow.services.course_service import CourseService
from courseflow.services.notification_service import NotificationService
from courseflow.services.profile_service import ProfileService
from courseflow.services.progress_service import ProgressService
from courseflow.services.thread_service import ThreadService, thread_path

logger = logging.getLogger(__name__)


class SubmissionState(str, Enum):
    """Stages a submission passes through. Used for logging."""

    CREATED = "created"
    THREAD_RESOLVED = "thread_resolved"
    MESSAGE_SENT = "message_sent"
    RUN_POLLING = "run_polling"
    RUN_COMPLETED = "run_completed"
    UNLOCK_CHECKED = "unlock_checked"
    PERSISTED = "persisted"


class ChatService:
    """
    Handles chat submissions for all chat types.

    Chat-type specific behaviour (persona, assistant, template, unlock
    detection) comes from the ``ChatMode`` of the submission; this class only
    sequences the steps.
    """

    def __init__(
        self,
        course_service: CourseService,
        profile_service: ProfileService,
        progress_service: ProgressService,
        thread_service: ThreadService,
        ai_settings_service: AiSettingsService,
        assistant_client: AssistantClient,
        run_poller: Optional[RunPoller] = None,
        unlock_extractor: Optional[UnlockCodeExtractor] = None,
        notification_service: Optional[NotificationService] = None,
    ):
        """
        Initializes the ChatService with its collaborators.

        Args:
            course_service: Course tree access.
            profile_service: Profile access (cached) for personalization.
            progress_service: Applies unlocks.
            thread_service: Conversation records and transcripts.
            ai_settings_service: Global instruction templates and run options.
            assistant_client: The hosted assistant API.
            run_poller: Polls runs; built from configuration if not supplied.
            unlock_extractor: Unlock code detection; built from configuration if not supplied.
            notification_service: Instructor notifications for Q&A questions.
        """
        self.course_service = course_service
        self.profile_service = profile_service
        self.progress_service = progress_service
        self.thread_service = thread_service
        self.ai_settings_service = ai_settings_service
        self.assistant_client = assistant_client
        self.run_poller = run_poller or RunPoller(assistant_client)
        self.unlock_extractor = unlock_extractor or get_unlock_extractor(
            config.UNLOCK_CODE_PATTERN
        )
        self.notification_service = notification_service or NotificationService()

    @staticmethod
    def _log_state(submission: SubmitMessageInput, state: SubmissionState) -> None:
        logger.info(
            f"Chat submission {submission.user_id}/{submission.course_id}/"
            f"{submission.lesson_id}/{submission.chat_type.value}: {state.value}"
        )

    def _load_context(
        self, submission: SubmitMessageInput
    ) -> Tuple[Course, Optional[Lesson], ChatMode, str]:
        """Loads course and lesson and resolves the mode and assistant id."""
        course = self.course_service.get_course(submission.course_id)
        lesson = (
            self.course_service.get_lesson(course, submission.lesson_id)
            if submission.lesson_id
            else None
        )
        mode = get_chat_mode(submission.chat_type)
        if mode.requires_lesson and lesson is None:
            logger.error(f"{mode.chat_type.value} chat for course {course.id} has no lesson")
            raise MissingAssistantConfigurationError(
                f"{mode.chat_type.value.capitalize()} chat requires a lesson"
            )
        assistant_id = submission.assistant_id or mode.resolve_assistant_id(course, lesson)
        if not assistant_id:
            logger.error(
                f"No {mode.chat_type.value} assistant configured for course "
                f"{course.id}, lesson {submission.lesson_id}"
            )
            raise MissingAssistantConfigurationError(
                f"No assistant configured for {mode.chat_type.value} chat in this "
                f"{'lesson' if submission.lesson_id else 'course'}"
            )
        return course, lesson, mode, assistant_id

    async def _resolve_thread(self, submission: SubmitMessageInput, path: str) -> str:
        """
        Returns the external thread id for the conversation at ``path``.

        A supplied thread id is reused when nothing else is recorded for the
        conversation (or it matches the record). Otherwise the recorded id is
        used, and only if there is none is a new thread created. A new id is
        claimed with a conditional write before any message is sent; if another
        submission claimed the path first, its thread is adopted instead.
        """
        stored = self.thread_service.get_thread(path)
        stored_id = stored.assistant_thread_id if stored else None
        requested_id = (submission.existing_thread_id or "").strip() or None

        if requested_id:
            if stored_id is None:
                _, thread_id = self.thread_service.claim_thread(
                    path,
                    requested_id,
                    submission.course_id,
                    submission.chat_type,
                    submission.lesson_id,
                )
                return thread_id
            if requested_id != stored_id:
                logger.warning(
                    f"Supplied thread {requested_id} does not match {stored_id} "
                    f"recorded at {path}; using the recorded thread"
                )
            return stored_id

        if stored_id:
            return stored_id

        new_id = await self.assistant_client.create_thread(
            metadata={
                "userId": submission.user_id,
                "courseId": submission.course_id,
                "lessonId": submission.lesson_id or "",
                "chatType": submission.chat_type.value,
            }
        )
        _, thread_id = self.thread_service.claim_thread(
            path, new_id, submission.course_id, submission.chat_type, submission.lesson_id
        )
        return thread_id

    def _build_instructions(
        self,
        submission: SubmitMessageInput,
        course: Course,
        lesson: Optional[Lesson],
        mode: ChatMode,
        ai_settings: AiSettings,
    ) -> str:
        """Personalizes the mode's instruction template for the learner."""
        profile = self.profile_service.get_profile(submission.user_id)
        context = ProfileService.build_personalization_context(
            profile,
            course_id=course.id,
            lesson_id=submission.lesson_id,
            course_title=course.title,
            lesson_title=lesson.title if lesson else "",
        )
        return render_template(
            mode.resolve_template(ai_settings, lesson), context.as_template_values()
        )

    async def submit_message(self, submission: SubmitMessageInput) -> ChatResult:
        """
        Runs one chat turn.

        Args:
            submission: The learner's message and its routing metadata.

        Returns:
            The assistant's reply with the thread id, run id and, for
            recitation chats, any unlock code found in the reply.

        Raises:
            EmptyMessageError: The message is blank. Nothing is called or written.
            CourseNotFoundError: Unknown course.
            LessonNotFoundError: Unknown lesson.
            MissingAssistantConfigurationError: No assistant for the chat type.
            UpstreamUnavailableError: The assistant service could not be reached.
            RunFailedError: The run ended in a state other than completed.
            RunTimeoutError: The run did not finish within the polling budget.
        """
        self._log_state(submission, SubmissionState.CREATED)
        message = submission.message.strip()
        if not message:
            raise EmptyMessageError("Message cannot be empty")

        course, lesson, mode, assistant_id = self._load_context(submission)
        path = thread_path(
            submission.user_id, submission.course_id, mode.chat_type, submission.lesson_id
        )

        thread_id = await self._resolve_thread(submission, path)
        self._log_state(submission, SubmissionState.THREAD_RESOLVED)

        try:
            self.thread_service.append_message(path, Sender.USER, message)
            await self.assistant_client.add_user_message(thread_id, message)
            self._log_state(submission, SubmissionState.MESSAGE_SENT)

            ai_settings = self.ai_settings_service.get_settings()
            instructions = self._build_instructions(
                submission, course, lesson, mode, ai_settings
            )
            run_options = ai_settings.global_settings
            run = await self.assistant_client.create_run(
                thread_id,
                assistant_id,
                instructions=instructions,
                model=run_options.model or config.OPENAI_MODEL,
                temperature=run_options.temperature,
                max_tokens=run_options.max_tokens,
            )
            self._log_state(submission, SubmissionState.RUN_POLLING)

            run = await self.run_poller.wait_for_completion(thread_id, run)
            self._log_state(submission, SubmissionState.RUN_COMPLETED)

            reply = await self.assistant_client.get_reply_text(thread_id, run.id)
            if reply is None:
                logger.error(f"Run {run.id} completed without an assistant message")
                raise RunFailedError(
                    "AI run completed without a response", status="no_response"
                )
        except ChatError as e:
            if e.thread_id is None:
                e.thread_id = thread_id
            raise

        unlock_code: Optional[str] = None
        next_lesson_id: Optional[str] = None
        if mode.detects_unlock and submission.lesson_id:
            unlock_code = self.unlock_extractor.extract(reply)
            if unlock_code:
                next_lesson_id = self.progress_service.apply_unlock(
                    submission.user_id, course, submission.lesson_id, unlock_code
                )
        self._log_state(submission, SubmissionState.UNLOCK_CHECKED)

        self.thread_service.append_message(path, Sender.ASSISTANT, reply)
        self._log_state(submission, SubmissionState.PERSISTED)

        if mode.chat_type == ChatType.QNA:
            await self.notification_service.notify_qna_question(
                submission.user_id,
                submission.course_id,
                submission.lesson_id,
                message,
                thread_id,
            )

        logger.info(
            f"Chat turn complete for user {submission.user_id} on thread {thread_id} "
            f"(run {run.id}, unlock: {unlock_code})"
        )
        return ChatResult(
            response=reply,
            thread_id=thread_id,
            run_id=run.id,
            chat_type=mode.chat_type,
            unlock_code=unlock_code,
            next_lesson_id=next_lesson_id,
        )

    def get_history(
        self,
        user_id: str,
        course_id: str,
        chat_type: ChatType,
        lesson_id: Optional[str] = None,
    ) -> Tuple[Optional[ConversationThread], List[ChatMessage]]:
        """
        Returns the conversation record and transcript for a tuple.

        Raises:
            CourseNotFoundError: Unknown course.
            LessonNotFoundError: Unknown lesson.
        """
        course = self.course_service.get_course(course_id)
        if lesson_id:
            self.course_service.get_lesson(course, lesson_id)
        elif get_chat_mode(chat_type).requires_lesson:
            return None, []
        path = thread_path(user_id, course_id, ChatType(chat_type), lesson_id)
        return self.thread_service.get_thread(path), self.thread_service.list_messages(path)
