"""
Best-effort notifications to other systems.

Notifications are fire-and-forget: failures are logged and never reach the
chat flow.
"""
# pylint: disable=broad-exception-caught

import asyncio
import logging
from typing import Any, Dict, Optional

import requests

from courseflow import config

logger = logging.getLogger(__name__)


class NotificationService:
    """Posts instructor notifications to an optional webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = config.QNA_WEBHOOK_URL,
        timeout: float = config.NOTIFICATION_TIMEOUT_SECONDS,
    ):
        self.webhook_url = webhook_url
        self.timeout = timeout

    def _post(self, payload: Dict[str, Any]) -> bool:
        if not self.webhook_url:
            logger.info(f"No QnA webhook configured; notification not sent: {payload}")
            return False
        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
            return True
        except requests.RequestException as e:
            logger.warning(f"QnA notification to {self.webhook_url} failed: {e}")
            return False

    async def notify_qna_question(
        self,
        user_id: str,
        course_id: str,
        lesson_id: Optional[str],
        question: str,
        thread_id: str,
    ) -> bool:
        """
        Tells instructors a learner asked a question.

        Returns:
            True if the webhook accepted the notification.
        """
        payload = {
            "event": "qna_question",
            "userId": user_id,
            "courseId": course_id,
            "lessonId": lesson_id,
            "threadId": thread_id,
            "question": question,
        }
        try:
            return await asyncio.to_thread(self._post, payload)
        except Exception as e:
            logger.error(f"Unexpected error sending QnA notification: {e}", exc_info=True)
            return False
