"""Activation of freshly created threads (temporary -> listed)."""

from __future__ import annotations

import enum
import logging
from typing import TYPE_CHECKING

from ..events import ChatActivated, EventBus, NewChatCreated
from .view_state import ChatViewState

if TYPE_CHECKING:  # pragma: no cover
    from ..infrastructure.backend_gateway import BackendGateway
    from .thread_list import ThreadListModel

LOGGER = logging.getLogger(__name__)


class ActivationState(enum.Enum):
    TEMPORARY = "temporary"
    ACTIVE = "active"


class ActivationStateMachine:
    """Tracks new threads until their first message lists them.

    On ``chat-activated`` the suppress-auto-select flag is cleared and the
    thread list is refreshed so the thread shows up. Threads that never get
    a message stay temporary; nothing reaps them.
    """

    def __init__(
        self,
        event_bus: EventBus,
        view_state: ChatViewState,
        thread_list: ThreadListModel,
        gateway: BackendGateway,
    ) -> None:
        self._bus = event_bus
        self._view = view_state
        self._thread_list = thread_list
        self._gateway = gateway
        self._states: dict[str, ActivationState] = {}

        self._bus.subscribe(NewChatCreated, self._on_new_chat_created)
        self._bus.subscribe(ChatActivated, self._on_chat_activated)

    def state_of(self, chat_id: str) -> ActivationState | None:
        return self._states.get(chat_id)

    @property
    def temporary_ids(self) -> list[str]:
        return [
            chat_id
            for chat_id, state in self._states.items()
            if state is ActivationState.TEMPORARY
        ]

    def _on_new_chat_created(self, event: NewChatCreated) -> None:
        thread = event.new_chat
        if thread.is_temporary and thread.id not in self._states:
            self._states[thread.id] = ActivationState.TEMPORARY

    def _on_chat_activated(self, event: ChatActivated) -> None:
        previous = self._states.get(event.chat_id)
        self._states[event.chat_id] = ActivationState.ACTIVE
        LOGGER.debug("Chat %s activated (was %s)", event.chat_id, previous)
        self._view.suppress_auto_select = False
        self._gateway.spawn(self._thread_list.refresh(), label="refresh-after-activation")
