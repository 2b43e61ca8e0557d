"""Simulated chat backend: in-memory thread and message CRUD with latency.

Every public operation is a coroutine that sleeps for a per-operation delay
before touching state, so callers experience the interleavings a real
backend would produce. Aggregates (``size_chars``, ``size_tokens``,
``last_msg_at``) are recomputed from the retained messages after every
mutation instead of being adjusted incrementally.
"""

from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Iterable, Mapping, Sequence

from .models import (
    ChatRole,
    FileAttachment,
    Message,
    SearchHit,
    Thread,
    ThreadStats,
    estimate_tokens,
    utcnow,
)
from .responses import synthesize_response

if TYPE_CHECKING:  # pragma: no cover
    from ..ui.events import EventBus

__all__ = [
    "BackendFault",
    "DEFAULT_DELAYS",
    "LatencyProfile",
    "ThreadNotFoundError",
    "ThreadStore",
]

LOGGER = logging.getLogger(__name__)

# Base delay per operation, in seconds.
DEFAULT_DELAYS: Mapping[str, float] = {
    "list_threads": 0.100,
    "create_thread": 0.150,
    "update_title": 0.100,
    "delete_thread": 0.150,
    "get_by_id": 0.050,
    "list_messages": 0.120,
    "add_message": 0.200,
    "generate_response": 1.500,
    "trim_messages_from": 0.100,
    "search_messages": 0.200,
    "get_thread_stats": 0.080,
    "update_message_like": 0.050,
}
_DEFAULT_ASSISTANT_MODEL = "gpt-4-turbo"


class BackendFault(RuntimeError):
    """Transient failure of the backend; callers may retry the operation."""


class ThreadNotFoundError(LookupError):
    """Raised when a mutation targets a thread that does not exist or was deleted."""

    def __init__(self, thread_id: str) -> None:
        super().__init__(f"Chat with ID {thread_id} not found")
        self.thread_id = thread_id


@dataclass(slots=True, frozen=True)
class LatencyProfile:
    """How long each store operation suspends its caller.

    Attributes:
        scale: Multiplier applied to every base delay; ``0`` yields once and
            returns immediately.
        jitter: Fraction of the base delay added or removed at random.
    """

    scale: float = 1.0
    jitter: float = 0.0

    def delay_for(self, operation: str, rng: random.Random) -> float:
        base = DEFAULT_DELAYS.get(operation, 0.1) * max(0.0, self.scale)
        if base <= 0:
            return 0.0
        spread = max(0.0, min(self.jitter, 1.0))
        if spread:
            base *= rng.uniform(1.0 - spread, 1.0 + spread)
        return base


class ThreadStore:
    """Canonical owner of thread and message records.

    Records handed to callers are copies; mutate them only through the
    store's operations. A non-zero ``fault_rate`` makes any operation fail
    with :class:`BackendFault` after its delay, before touching state.

    Events Emitted:
        - ChatActivated: when ``add_message`` clears a thread's temporary flag
    """

    def __init__(
        self,
        *,
        latency: LatencyProfile | None = None,
        event_bus: EventBus | None = None,
        assistant_model: str = _DEFAULT_ASSISTANT_MODEL,
        fault_rate: float = 0.0,
        rng: random.Random | None = None,
    ) -> None:
        self._latency = latency or LatencyProfile()
        self._fault_rate = max(0.0, min(fault_rate, 1.0))
        self._bus = event_bus
        self._assistant_model = assistant_model
        self._rng = rng or random.Random()
        # Canonical order: newest created first.
        self._threads: list[Thread] = []
        self._messages: dict[str, list[Message]] = {}

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def list_threads(self) -> list[Thread]:
        """Return listed threads, most recent message first."""
        await self._delay("list_threads")
        listed = [thread for thread in self._threads if thread.is_listed]
        listed.sort(key=lambda thread: thread.last_msg_at, reverse=True)
        return [thread.copy() for thread in listed]

    async def create_thread(self, title: str | None = None) -> Thread:
        """Create an empty temporary thread at the head of the canonical order."""
        await self._delay("create_thread")
        now = utcnow()
        thread = Thread(
            id=str(uuid.uuid4()),
            title=title or f"New Chat {date.today().isoformat()}",
            created_at=now,
            updated_at=now,
            last_msg_at=now,
            is_temporary=True,
        )
        self._threads.insert(0, thread)
        self._messages[thread.id] = []
        LOGGER.debug("ThreadStore.create_thread: id=%s, title=%r", thread.id, thread.title)
        return thread.copy()

    async def update_title(self, thread_id: str, title: str) -> Thread | None:
        """Rename a thread; unknown or deleted ids resolve to None."""
        await self._delay("update_title")
        thread = self._find(thread_id)
        if thread is None:
            return None
        thread.title = title
        thread.updated_at = utcnow()
        return thread.copy()

    async def delete_thread(self, thread_id: str) -> bool:
        """Soft-delete a thread and drop its messages."""
        await self._delay("delete_thread")
        thread = self._find(thread_id)
        if thread is None:
            return False
        thread.is_deleted = True
        thread.updated_at = utcnow()
        self._messages.pop(thread_id, None)
        LOGGER.debug("ThreadStore.delete_thread: id=%s", thread_id)
        return True

    async def get_by_id(self, thread_id: str) -> Thread | None:
        await self._delay("get_by_id")
        thread = self._find(thread_id)
        return thread.copy() if thread is not None else None

    async def get_thread_stats(self, thread_id: str) -> ThreadStats | None:
        await self._delay("get_thread_stats")
        thread = self._find(thread_id, include_deleted=True)
        if thread is None:
            return None
        return ThreadStats(
            message_count=len(self._messages.get(thread_id, [])),
            total_chars=thread.size_chars,
            total_tokens=thread.size_tokens,
            last_activity=thread.last_msg_at,
        )

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def list_messages(self, thread_id: str) -> list[Message]:
        """Messages of a thread in creation order; empty when unknown."""
        await self._delay("list_messages")
        return [message.copy() for message in self._messages.get(thread_id, [])]

    async def add_message(
        self,
        thread_id: str,
        role: ChatRole,
        content: str,
        files: Sequence[FileAttachment | Mapping[str, object] | str] | None = None,
    ) -> Message:
        """Append a message and recompute the thread's aggregates.

        The first message to reach a temporary thread activates it.

        Raises:
            ThreadNotFoundError: If the thread is unknown or deleted.
        """
        await self._delay("add_message")
        return self._append(thread_id, role, content, files)

    async def generate_response(self, thread_id: str, user_content: str) -> Message:
        """Append the assistant reply derived from ``user_content``.

        Raises:
            ThreadNotFoundError: If the thread is unknown or deleted.
        """
        await self._delay("generate_response")
        reply = synthesize_response(user_content)
        message = self._append(thread_id, "assistant", reply, None)
        LOGGER.debug(
            "ThreadStore.generate_response: thread=%s, message=%s, chars=%d",
            thread_id,
            message.id,
            message.size_chars,
        )
        return message

    async def trim_messages_from(self, thread_id: str, message_id: str) -> str | None:
        """Truncate a thread so it ends at the user message owning ``message_id``.

        An assistant target walks back to the nearest preceding user message.
        The retained list ends with that user message (inclusive).

        Returns:
            The retained user message's content, for regeneration, or None
            when the thread or message is unknown or no user message precedes it.
        """
        await self._delay("trim_messages_from")
        messages = self._messages.get(thread_id)
        thread = self._find(thread_id)
        if messages is None or thread is None:
            return None

        index = next((i for i, m in enumerate(messages) if m.id == message_id), -1)
        if index == -1:
            LOGGER.debug(
                "ThreadStore.trim_messages_from: message %s not in thread %s",
                message_id,
                thread_id,
            )
            return None

        user_index = next(
            (i for i in range(index, -1, -1) if messages[i].role == "user"),
            -1,
        )
        if user_index == -1:
            return None

        del messages[user_index + 1 :]
        self._recompute(thread)
        LOGGER.debug(
            "ThreadStore.trim_messages_from: thread=%s kept=%d",
            thread_id,
            len(messages),
        )
        return messages[user_index].content

    async def update_message_like(self, message_id: str, like: int) -> bool:
        """Record a -1/0/1 rating on a message anywhere in the store."""
        await self._delay("update_message_like")
        value = max(-1, min(1, int(like)))
        for messages in self._messages.values():
            for message in messages:
                if message.id == message_id:
                    message.like = value
                    return True
        return False

    async def search_messages(self, query: str) -> list[SearchHit]:
        """Case-insensitive substring search across every thread's messages."""
        await self._delay("search_messages")
        needle = query.lower()
        hits: list[SearchHit] = []
        for thread_id, messages in self._messages.items():
            matching = tuple(m.copy() for m in messages if needle in m.content.lower())
            if matching:
                hits.append(SearchHit(thread_id=thread_id, messages=matching))
        return hits

    # ------------------------------------------------------------------
    # Seeding
    # ------------------------------------------------------------------

    def seed(self, threads: Iterable[tuple[str, Sequence[tuple[ChatRole, str]]]]) -> list[str]:
        """Load listed threads synchronously, bypassing latency; returns their ids.

        Each entry is ``(title, [(role, content), ...])``; entries are given
        oldest first so the last one ends up most recent.
        """
        created: list[str] = []
        for title, turns in threads:
            now = utcnow()
            thread = Thread(
                id=str(uuid.uuid4()),
                title=title,
                created_at=now,
                updated_at=now,
                last_msg_at=now,
                is_temporary=False,
            )
            self._threads.insert(0, thread)
            self._messages[thread.id] = []
            for role, content in turns:
                self._append(thread.id, role, content, None, announce=False)
            created.append(thread.id)
        return created

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _append(
        self,
        thread_id: str,
        role: ChatRole,
        content: str,
        files: Sequence[FileAttachment | Mapping[str, object] | str] | None,
        *,
        announce: bool = True,
    ) -> Message:
        thread = self._find(thread_id)
        messages = self._messages.get(thread_id)
        if thread is None or messages is None:
            raise ThreadNotFoundError(thread_id)

        attachment = FileAttachment.from_value(files[0]) if files else None
        message = Message(
            id=str(uuid.uuid4()),
            thread_id=thread_id,
            role=role,
            content=content,
            created_at=utcnow(),
            attachment=attachment,
            model_name=None if role == "user" else self._assistant_model,
        )
        messages.append(message)
        self._recompute(thread)

        activated = thread.is_temporary
        thread.is_temporary = False
        if activated:
            LOGGER.debug("ThreadStore: thread %s activated by first message", thread_id)
            if announce and self._bus is not None:
                from ..ui.events import ChatActivated

                self._bus.publish(ChatActivated(chat_id=thread_id))
        return message.copy()

    def _recompute(self, thread: Thread) -> None:
        messages = self._messages.get(thread.id, [])
        thread.size_chars = sum(len(m.content) for m in messages)
        thread.size_tokens = sum(estimate_tokens(m.content) for m in messages)
        now = utcnow()
        thread.last_msg_at = messages[-1].created_at if messages else now
        thread.updated_at = now

    def _find(self, thread_id: str, *, include_deleted: bool = False) -> Thread | None:
        for thread in self._threads:
            if thread.id == thread_id and (include_deleted or not thread.is_deleted):
                return thread
        return None

    async def _delay(self, operation: str) -> None:
        await asyncio.sleep(self._latency.delay_for(operation, self._rng))
        if self._fault_rate and self._rng.random() < self._fault_rate:
            raise BackendFault(f"simulated failure in {operation}")
