"""
Persistence of conversation threads and their transcripts.

A conversation is identified by (user, course, lesson, chat type) and lives at
a deterministic path in the tree. The record holds the external assistant
thread id and the ``messages`` list the UI renders.
"""

import logging
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

from courseflow.exceptions import validate_internal_model
from courseflow.models import ChatMessage, ChatType, ConversationThread, Sender
from courseflow.services.progress_service import progress_path
from courseflow.services.tree_store import SQLiteTreeStore

logger = logging.getLogger(__name__)


def thread_path(
    user_id: str, course_id: str, chat_type: ChatType, lesson_id: Optional[str] = None
) -> str:
    """
    Tree path of the conversation for a (user, course, lesson, chat type) tuple.

    Lesson-scoped conversations live under the lesson; course-level Q&A has one
    thread per course, and course-level general chat uses the course messaging
    area. Recitation only exists inside a lesson.

    Raises:
        ValueError: For a recitation without a lesson.
    """
    if lesson_id:
        return f"{progress_path(user_id, course_id)}/lessonThreads/{lesson_id}/{chat_type.value}"
    if chat_type == ChatType.GENERAL:
        return f"messagingThreads/{course_id}/{user_id}"
    if chat_type == ChatType.QNA:
        return f"{progress_path(user_id, course_id)}/qnaThreads"
    raise ValueError(f"{chat_type.value} conversations require a lesson")


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ThreadService:
    """Reads and writes conversation thread records."""

    def __init__(self, store: SQLiteTreeStore):
        """
        Initializes the ThreadService.

        Args:
            store: The keyed-tree store.
        """
        self.store = store

    def get_thread(self, path: str) -> Optional[ConversationThread]:
        """Returns the thread record at ``path``, or None if no thread id is stored."""
        data = self.store.get(path)
        if not isinstance(data, dict) or not data.get("assistantThreadId"):
            return None
        return validate_internal_model(
            ConversationThread, data, context_message=f"Stored thread at {path} is invalid"
        )

    def claim_thread(
        self,
        path: str,
        thread_id: str,
        course_id: str,
        chat_type: ChatType,
        lesson_id: Optional[str] = None,
    ) -> Tuple[bool, str]:
        """
        Records ``thread_id`` for the conversation unless one is already recorded.

        This is a conditional write on ``assistantThreadId``: of two concurrent
        claims exactly one wins, and the other learns the winning id.

        Returns:
            (claimed, thread_id) where thread_id is the id now stored at the path.
        """
        claimed, stored_id = self.store.set_if_absent(f"{path}/assistantThreadId", thread_id)
        if not claimed:
            logger.warning(
                f"Thread already recorded at {path} ({stored_id}); discarding {thread_id}"
            )
            return False, str(stored_id)

        metadata = ConversationThread(
            course_id=course_id,
            lesson_id=lesson_id,
            chat_type=chat_type,
            created_at=_now_iso(),
        ).to_store()
        self.store.update(path, metadata)
        logger.info(f"Recorded thread {thread_id} at {path}")
        return True, thread_id

    def append_message(self, path: str, sender: Sender, text: str) -> str:
        """
        Appends a message to the conversation's transcript.

        Returns:
            The push id of the stored message.
        """
        message = ChatMessage(sender=sender, text=text, timestamp=_now_iso())
        key = self.store.push(f"{path}/messages", message.to_store())
        logger.debug(f"Appended {sender.value} message {key} at {path}")
        return key

    def list_messages(self, path: str) -> List[ChatMessage]:
        """Returns the transcript in send order."""
        data: Any = self.store.get(f"{path}/messages")
        if not isinstance(data, dict):
            return []
        return [
            validate_internal_model(ChatMessage, data[key], context_message="Stored message is invalid")
            for key in sorted(data)
        ]
