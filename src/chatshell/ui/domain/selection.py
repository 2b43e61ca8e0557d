"""Selection controller: which thread of a scope is active."""

from __future__ import annotations

import enum
import logging
from typing import Sequence

from ..events import (
    ChatSelectionChanged,
    EventBus,
    HistoryChatSelected,
    HistorySelectionCleared,
    ThreadListChanged,
)
from .view_state import ChatViewState

LOGGER = logging.getLogger(__name__)


class SelectionState(enum.Enum):
    UNRESOLVED = "unresolved"
    RESOLVED = "resolved"


class SelectionController:
    """Decides and republishes the active thread id of a scope.

    Reconciliation runs on every ``thread-list-changed``. The stored id is
    reaffirmed when present in the list, otherwise the first thread is
    selected and persisted. Reaffirmation always publishes, so surfaces that
    mount late converge on the current selection.

    While the suppress-auto-select flag is set (a new chat is being started)
    the controller stays unresolved; the flag is cleared by an explicit
    :meth:`select` or by activation of the new chat.

    Events Emitted:
        - ChatSelectionChanged: on every resolution and explicit selection
    """

    def __init__(self, event_bus: EventBus, view_state: ChatViewState) -> None:
        self._bus = event_bus
        self._view = view_state
        self._chat_ids: tuple[str, ...] = ()
        self._selected: str | None = None
        self._state = SelectionState.UNRESOLVED

        self._bus.subscribe(ThreadListChanged, self._on_thread_list_changed)
        self._bus.subscribe(HistoryChatSelected, self._on_history_chat_selected)
        self._bus.subscribe(HistorySelectionCleared, self._on_history_selection_cleared)

    @property
    def state(self) -> SelectionState:
        return self._state

    @property
    def selected_chat_id(self) -> str | None:
        return self._selected

    def reconcile(self, chat_ids: Sequence[str] | None = None) -> str | None:
        """Resolve the selection against ``chat_ids`` (or the last list seen)."""

        if chat_ids is not None:
            self._chat_ids = tuple(chat_ids)

        if self._view.suppress_auto_select:
            self._selected = None
            self._state = SelectionState.UNRESOLVED
            LOGGER.debug("Selection suppressed for scope %s", self._view.scope_key)
            return None

        if not self._chat_ids:
            self._selected = None
            self._state = SelectionState.UNRESOLVED
            return None

        stored = self._view.selected_chat_id
        if stored is not None and stored in self._chat_ids:
            chosen = stored
        else:
            chosen = self._chat_ids[0]
            self._view.selected_chat_id = chosen
            LOGGER.debug(
                "Selection for scope %s fell back to first thread %s (stored=%s)",
                self._view.scope_key,
                chosen,
                stored,
            )
        self._resolve(chosen)
        return chosen

    def select(self, chat_id: str) -> None:
        """Explicit selection request; clears suppression."""

        self._view.suppress_auto_select = False
        self._view.selected_chat_id = chat_id
        self._resolve(chat_id)

    def clear(self) -> None:
        self._selected = None
        self._state = SelectionState.UNRESOLVED
        self._view.selected_chat_id = None

    def _resolve(self, chat_id: str) -> None:
        self._selected = chat_id
        self._state = SelectionState.RESOLVED
        self._bus.publish(ChatSelectionChanged(scope_key=self._view.scope_key, chat_id=chat_id))

    def _on_thread_list_changed(self, event: ThreadListChanged) -> None:
        if event.scope_key == self._view.scope_key:
            self.reconcile(event.chat_ids)

    def _on_history_chat_selected(self, event: HistoryChatSelected) -> None:
        if event.scope_key == self._view.scope_key:
            self.select(event.chat_id)

    def _on_history_selection_cleared(self, event: HistorySelectionCleared) -> None:
        if event.scope_key == self._view.scope_key:
            self.clear()
