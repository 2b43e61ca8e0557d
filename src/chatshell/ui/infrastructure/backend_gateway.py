"""Failure boundary between the chat surfaces and the thread store.

Controllers never await the store directly. :meth:`BackendGateway.call`
retries transient faults, logs the final failure and hands back the
caller's fallback, so a failed backend call leaves prior UI state intact.
Synchronous bus handlers that need async work schedule it with
:meth:`BackendGateway.spawn`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Coroutine, TypeVar

from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ...chat.thread_store import BackendFault

__all__ = ["BackendGateway", "TRANSIENT_ERRORS"]

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    BackendFault,
    ConnectionError,
    TimeoutError,
)


class BackendGateway:
    """Retrying, logging wrapper around thread-store coroutines."""

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        retry_min_seconds: float = 0.1,
        retry_max_seconds: float = 2.0,
    ) -> None:
        self._max_attempts = max(1, max_attempts)
        self._retry_min_seconds = retry_min_seconds
        self._retry_max_seconds = retry_max_seconds
        self._tasks: set[asyncio.Task[Any]] = set()

    async def call(
        self,
        label: str,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        fallback: T | None = None,
        **kwargs: Any,
    ) -> T | None:
        """Await ``fn(*args, **kwargs)``; on failure log and return ``fallback``.

        Transient faults are retried with exponential backoff; any other
        exception fails immediately. Cancellation is never swallowed.
        """

        try:
            async for attempt in self._retrying():
                with attempt:
                    number = attempt.retry_state.attempt_number
                    if number > 1:
                        LOGGER.debug("Retrying %s (attempt %d/%d)", label, number, self._max_attempts)
                    return await fn(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception:
            LOGGER.exception("Backend call %s failed; keeping previous state", label)
        return fallback

    def spawn(self, coro: Coroutine[Any, Any, Any], *, label: str = "task") -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop and track it until it finishes.

        Must be called from within a running event loop.
        """

        task = asyncio.get_running_loop().create_task(coro, name=f"chatshell:{label}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.error(
                "Background task %s failed",
                task.get_name(),
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(
                multiplier=self._retry_min_seconds,
                max=self._retry_max_seconds,
            ),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
        )
