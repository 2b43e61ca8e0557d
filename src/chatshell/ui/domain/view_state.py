"""Scoped view of the local store: titles, overlays, selection and panel flags."""

from __future__ import annotations

import logging
from typing import Iterable, Mapping

from ...chat.models import Thread
from ...services.local_store import LocalStore

LOGGER = logging.getLogger(__name__)

FOLDERS_KEY = "chat_folders"


class ChatViewState:
    """Per-scope records every surface reads from and writes to.

    Keys are ``<scope>-chat-titles``, ``<scope>-temp-chats``,
    ``<scope>-selected-chat-id``, ``<scope>-chat-history-menu-open`` and
    ``<scope>-suppress-auto-select``. Folder records are global and live
    under ``chat_folders``.
    """

    def __init__(self, store: LocalStore, scope_key: str) -> None:
        self._store = store
        self._scope = scope_key

    @property
    def scope_key(self) -> str:
        return self._scope

    @property
    def store(self) -> LocalStore:
        return self._store

    def _key(self, suffix: str) -> str:
        return f"{self._scope}-{suffix}"

    # ------------------------------------------------------------------
    # Titles
    # ------------------------------------------------------------------

    def titles(self) -> dict[str, str]:
        value = self._store.get(self._key("chat-titles"), {})
        return dict(value) if isinstance(value, Mapping) else {}

    def title_for(self, chat_id: str) -> str | None:
        return self.titles().get(chat_id)

    def display_title(self, thread: Thread) -> str:
        """Persisted title wins over the backend's."""

        return self.titles().get(thread.id) or thread.title

    def set_title(self, chat_id: str, title: str) -> None:
        titles = self.titles()
        titles[chat_id] = title
        self._store.set(self._key("chat-titles"), titles)

    def backfill_titles(self, threads: Iterable[Thread]) -> list[str]:
        """Add backend titles for threads missing from the map; existing entries stay."""

        titles = self.titles()
        added = [thread.id for thread in threads if thread.id not in titles]
        if not added:
            return []
        lookup = {thread.id: thread.title for thread in threads}
        for chat_id in added:
            titles[chat_id] = lookup[chat_id]
        self._store.set(self._key("chat-titles"), titles)
        LOGGER.debug("Back-filled %d chat title(s) for scope %s", len(added), self._scope)
        return added

    # ------------------------------------------------------------------
    # Temporary overlay
    # ------------------------------------------------------------------

    def temporary_flags(self) -> dict[str, bool]:
        value = self._store.get(self._key("temp-chats"), {})
        return {str(k): bool(v) for k, v in value.items()} if isinstance(value, Mapping) else {}

    def is_temporary(self, chat_id: str) -> bool:
        return self.temporary_flags().get(chat_id, False)

    def set_temporary(self, chat_id: str, is_temporary: bool) -> None:
        flags = self.temporary_flags()
        flags[chat_id] = is_temporary
        self._store.set(self._key("temp-chats"), flags)

    def toggle_temporary(self, chat_id: str) -> bool:
        value = not self.is_temporary(chat_id)
        self.set_temporary(chat_id, value)
        return value

    # ------------------------------------------------------------------
    # Selection, panel and suppression
    # ------------------------------------------------------------------

    @property
    def selected_chat_id(self) -> str | None:
        value = self._store.get(self._key("selected-chat-id"))
        return value if isinstance(value, str) and value else None

    @selected_chat_id.setter
    def selected_chat_id(self, chat_id: str | None) -> None:
        if chat_id is None:
            self._store.remove(self._key("selected-chat-id"))
        else:
            self._store.set(self._key("selected-chat-id"), chat_id)

    @property
    def menu_open(self) -> bool:
        return bool(self._store.get(self._key("chat-history-menu-open"), True))

    @menu_open.setter
    def menu_open(self, is_open: bool) -> None:
        self._store.set(self._key("chat-history-menu-open"), bool(is_open))

    @property
    def suppress_auto_select(self) -> bool:
        return bool(self._store.get(self._key("suppress-auto-select"), False))

    @suppress_auto_select.setter
    def suppress_auto_select(self, value: bool) -> None:
        if value:
            self._store.set(self._key("suppress-auto-select"), True)
        else:
            self._store.remove(self._key("suppress-auto-select"))
