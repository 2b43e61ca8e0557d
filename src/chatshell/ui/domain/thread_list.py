"""Thread-list panel model.

Holds the panel's in-memory display list. The order can diverge from the
backend's (local drag reorder) until the next :meth:`ThreadListModel.refresh`.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ...chat.models import Thread
from ..events import ChatTitleUpdated, EventBus, NewChatCreated, ThreadListChanged

if TYPE_CHECKING:  # pragma: no cover
    from ...chat.thread_store import ThreadStore
    from ..infrastructure.backend_gateway import BackendGateway
    from .view_state import ChatViewState

LOGGER = logging.getLogger(__name__)


class ThreadListModel:
    """Domain manager for the thread-list panel.

    Insertion is idempotent by id: threads announced through
    ``new-chat-created`` are added only when missing, so interleaved
    creations never duplicate an entry.

    Events Emitted:
        - ThreadListChanged: after every change to the display list
        - NewChatCreated: after :meth:`create_thread`
    """

    def __init__(
        self,
        event_bus: EventBus,
        gateway: BackendGateway,
        store: ThreadStore,
        view_state: ChatViewState,
    ) -> None:
        self._bus = event_bus
        self._gateway = gateway
        self._store = store
        self._view = view_state
        self._threads: list[Thread] = []
        # Announced but not yet listed (temporary) threads, for title lookups.
        self._unlisted: dict[str, Thread] = {}
        self._loaded = False

        self._bus.subscribe(NewChatCreated, self._on_new_chat_created)
        self._bus.subscribe(ChatTitleUpdated, self._on_title_updated)

    @property
    def scope_key(self) -> str:
        return self._view.scope_key

    @property
    def loaded(self) -> bool:
        return self._loaded

    @property
    def threads(self) -> list[Thread]:
        return [thread.copy() for thread in self._threads]

    @property
    def chat_ids(self) -> tuple[str, ...]:
        return tuple(thread.id for thread in self._threads)

    def visible_threads(self) -> list[Thread]:
        """Threads shown in "Recent Chats": the local temporary overlay hides entries."""
        flags = self._view.temporary_flags()
        return [thread.copy() for thread in self._threads if not flags.get(thread.id, False)]

    def get(self, chat_id: str) -> Thread | None:
        for thread in self._threads:
            if thread.id == chat_id:
                return thread.copy()
        return None

    def display_title(self, chat_id: str) -> str | None:
        """Title shown for ``chat_id``, including chats not listed yet."""
        thread = self.get(chat_id) or self._unlisted.get(chat_id)
        if thread is None:
            return self._view.title_for(chat_id)
        return self._view.display_title(thread)

    # ------------------------------------------------------------------
    # Backend-backed operations
    # ------------------------------------------------------------------

    async def refresh(self) -> bool:
        """Reload the list from the backend; on failure the current list stays."""
        threads = await self._gateway.call("list_threads", self._store.list_threads)
        if threads is None:
            return False
        self._threads = list(threads)
        self._loaded = True
        for thread in self._threads:
            self._unlisted.pop(thread.id, None)
        self._view.backfill_titles(self._threads)
        LOGGER.debug("ThreadListModel.refresh: %d thread(s)", len(self._threads))
        self._announce()
        return True

    async def create_thread(self, title: str | None = None) -> Thread | None:
        thread = await self._gateway.call("create_thread", self._store.create_thread, title)
        if thread is None:
            return None
        self._bus.publish(NewChatCreated(new_chat=thread))
        return thread

    async def delete_thread(self, chat_id: str) -> bool:
        deleted = await self._gateway.call(
            "delete_thread", self._store.delete_thread, chat_id, fallback=False
        )
        if not deleted:
            return False
        self._unlisted.pop(chat_id, None)
        before = len(self._threads)
        self._threads = [thread for thread in self._threads if thread.id != chat_id]
        if len(self._threads) != before:
            self._announce()
        return True

    # ------------------------------------------------------------------
    # Local-only operations
    # ------------------------------------------------------------------

    def reorder(self, active_chat_id: str, over_chat_id: str) -> bool:
        """Move ``active_chat_id`` to the slot of ``over_chat_id`` (display only)."""
        ids = list(self.chat_ids)
        if active_chat_id == over_chat_id:
            return False
        try:
            old_index = ids.index(active_chat_id)
            new_index = ids.index(over_chat_id)
        except ValueError:
            LOGGER.debug(
                "ThreadListModel.reorder: %s or %s not in list", active_chat_id, over_chat_id
            )
            return False
        thread = self._threads.pop(old_index)
        self._threads.insert(new_index, thread)
        self._announce()
        return True

    def add_if_missing(self, thread: Thread) -> bool:
        if any(existing.id == thread.id for existing in self._threads):
            return False
        self._threads.insert(0, thread.copy())
        self._announce()
        return True

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_new_chat_created(self, event: NewChatCreated) -> None:
        # Temporary threads stay hidden until activation triggers a refresh.
        if not event.new_chat.is_listed:
            self._unlisted[event.new_chat.id] = event.new_chat.copy()
            return
        if not self.add_if_missing(event.new_chat):
            LOGGER.debug("ThreadListModel: chat %s already listed", event.new_chat.id)

    def _on_title_updated(self, event: ChatTitleUpdated) -> None:
        if event.scope_key != self.scope_key:
            return
        unlisted = self._unlisted.get(event.chat_id)
        if unlisted is not None:
            unlisted.title = event.new_title
        for thread in self._threads:
            if thread.id == event.chat_id:
                thread.title = event.new_title
                return

    def _announce(self) -> None:
        self._bus.publish(ThreadListChanged(scope_key=self.scope_key, chat_ids=self.chat_ids))
