"""Bounded polling of an assistant run until it reaches a terminal state."""

import asyncio
import time
from typing import Awaitable, Callable, Optional

from courseflow import config
from courseflow.ai.assistant_client import AssistantClient, RunStatus
from courseflow.exceptions import RunFailedError, RunTimeoutError
from courseflow.logger import logger


class RunPoller:
    """
    Polls a run until it completes, fails, or the polling budget is spent.

    The budget is two limits, whichever is hit first: a number of status checks
    and a total elapsed time. The delay between checks starts at ``interval``
    and is multiplied by ``backoff`` after each check, capped at
    ``max_interval``; ``backoff=1`` gives a fixed interval.
    """

    def __init__(
        self,
        client: AssistantClient,
        interval: float = config.POLL_INTERVAL_SECONDS,
        max_attempts: int = config.POLL_MAX_ATTEMPTS,
        max_elapsed: float = config.POLL_MAX_ELAPSED_SECONDS,
        backoff: float = config.POLL_BACKOFF,
        max_interval: float = config.POLL_MAX_INTERVAL_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if interval < 0 or max_elapsed <= 0:
            raise ValueError("interval must be >= 0 and max_elapsed > 0")
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self.max_elapsed = max_elapsed
        self.backoff = max(backoff, 1.0)
        self.max_interval = max(max_interval, interval)
        self._sleep = sleep
        self._clock = clock

    async def wait_for_completion(self, thread_id: str, run: RunStatus) -> RunStatus:
        """
        Waits for ``run`` to reach ``completed``.

        Returns:
            The completed run.

        Raises:
            RunFailedError: The run ended in any other terminal state.
            RunTimeoutError: Attempts or time ran out while the run was pending.
            UpstreamUnavailableError: A status check failed.
        """
        started = self._clock()
        attempts = 0
        delay = self.interval
        status = run

        while status.is_pending:
            elapsed = self._clock() - started
            if attempts >= self.max_attempts or elapsed >= self.max_elapsed:
                logger.error(
                    f"Run {run.id} still '{status.status}' after {attempts} checks "
                    f"({elapsed:.1f}s); giving up"
                )
                raise RunTimeoutError(
                    f"Run timeout after {attempts} status checks",
                    thread_id=thread_id,
                    attempts=attempts,
                )
            await self._sleep(delay)
            status = await self.client.retrieve_run(thread_id, run.id)
            attempts += 1
            logger.debug(f"Run {run.id} status: {status.status} (check {attempts})")
            delay = min(delay * self.backoff, self.max_interval)

        if status.status != "completed":
            detail: Optional[str] = status.last_error
            logger.error(f"Run {run.id} ended with status {status.status}: {detail}")
            raise RunFailedError(
                f"AI run failed with status: {status.status}",
                status=status.status,
                thread_id=thread_id,
            )
        return status
