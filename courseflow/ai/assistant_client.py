"""Thin async wrapper around the hosted Assistants API (threads, messages, runs)."""

from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel

from courseflow import config
from courseflow.exceptions import UpstreamUnavailableError, log_and_propagate
from courseflow.logger import logger

R = TypeVar("R")

PENDING_RUN_STATUSES = frozenset({"queued", "in_progress", "running", "cancelling"})


# pylint: disable=too-few-public-methods
class RunStatus(BaseModel):
    """The fields of a run the chat flow cares about."""

    id: str
    status: str
    last_error: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        """True while the run has not reached a terminal state."""
        return self.status in PENDING_RUN_STATUSES


def _to_run_status(run: Any) -> RunStatus:
    last_error = getattr(run, "last_error", None)
    return RunStatus(
        id=run.id,
        status=run.status,
        last_error=getattr(last_error, "message", None) if last_error else None,
    )


class AssistantClient:
    """
    Calls the hosted assistant service.

    Transport and API failures are raised as ``UpstreamUnavailableError``; no
    call is retried here.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Initializes the client. The underlying ``AsyncOpenAI`` is created on first use.

        Args:
            api_key: API key; defaults to OPENAI_API_KEY from the environment.
            client: Pre-built client, mainly for tests.
        """
        self._api_key = api_key if api_key is not None else config.OPENAI_API_KEY
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                logger.error("Assistant API key not configured. Cannot make API call.")
                raise UpstreamUnavailableError("Assistant API is not configured")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    async def _call(self, operation: str, func: Callable[[], Awaitable[R]]) -> R:
        try:
            return await func()
        except openai.APIError as e:
            log_and_propagate(
                UpstreamUnavailableError, f"Assistant service error during {operation}", e
            )
        except openai.OpenAIError as e:
            log_and_propagate(
                UpstreamUnavailableError, f"Assistant client error during {operation}", e
            )

    async def create_thread(self, metadata: Optional[Dict[str, str]] = None) -> str:
        """Creates a thread and returns its id."""
        client = self._get_client()
        thread = await self._call(
            "create_thread", lambda: client.beta.threads.create(metadata=metadata or {})
        )
        logger.info(f"Created assistant thread {thread.id}")
        return thread.id

    async def add_user_message(self, thread_id: str, content: str) -> str:
        """Appends a user message to a thread and returns the message id."""
        client = self._get_client()
        message = await self._call(
            "add_message",
            lambda: client.beta.threads.messages.create(
                thread_id, role="user", content=content
            ),
        )
        return message.id

    async def create_run(
        self,
        thread_id: str,
        assistant_id: str,
        instructions: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> RunStatus:
        """Starts a run of ``assistant_id`` on the thread."""
        client = self._get_client()
        options: Dict[str, Any] = {"assistant_id": assistant_id}
        if instructions:
            options["instructions"] = instructions
        if model:
            options["model"] = model
        if temperature is not None:
            options["temperature"] = temperature
        if max_tokens:
            options["max_completion_tokens"] = max_tokens
        run = await self._call(
            "create_run", lambda: client.beta.threads.runs.create(thread_id, **options)
        )
        logger.info(f"Created run {run.id} on thread {thread_id} (status: {run.status})")
        return _to_run_status(run)

    async def retrieve_run(self, thread_id: str, run_id: str) -> RunStatus:
        """Fetches the current status of a run."""
        client = self._get_client()
        run = await self._call(
            "retrieve_run",
            lambda: client.beta.threads.runs.retrieve(run_id, thread_id=thread_id),
        )
        return _to_run_status(run)

    async def get_reply_text(self, thread_id: str, run_id: str) -> Optional[str]:
        """
        Returns the text of the assistant message produced by ``run_id``, or
        None if the run added no assistant message to the thread.
        """
        client = self._get_client()
        page = await self._call(
            "list_messages",
            lambda: client.beta.threads.messages.list(thread_id, order="desc", limit=20),
        )
        chosen = next(
            (
                m
                for m in page.data
                if m.role == "assistant" and getattr(m, "run_id", None) == run_id
            ),
            None,
        )
        if chosen is None:
            return None
        parts = [
            block.text.value
            for block in chosen.content
            if getattr(block, "type", None) == "text"
        ]
        return "\n".join(parts) if parts else None
