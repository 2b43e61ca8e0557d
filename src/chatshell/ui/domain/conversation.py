"""Conversation view model: messages of the selected thread."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Mapping, Sequence

from ...chat.models import FileAttachment, Message, Thread
from ..events import (
    ChatSelectionChanged,
    ChatTemporaryToggled,
    ChatTitleUpdated,
    EventBus,
    HistoryChatSelected,
    HistorySelectionCleared,
    NewChatCreated,
)
from .view_state import ChatViewState

if TYPE_CHECKING:  # pragma: no cover
    from ...chat.thread_store import ThreadStore
    from ..infrastructure.backend_gateway import BackendGateway

LOGGER = logging.getLogger(__name__)

NEW_CHAT_TITLE = "New Chat"

Attachments = Sequence[FileAttachment | Mapping[str, object] | str]


class ConversationSession:
    """Follows the selected chat and drives sends, regeneration and new chats.

    Message loads are never cancelled; a load that completes after the
    selection moved on is discarded.

    Events Emitted:
        - ChatTitleUpdated: the persisted title whenever a chat is selected
        - HistorySelectionCleared, NewChatCreated, ChatSelectionChanged: from
          :meth:`start_new_chat`
        - HistoryChatSelected: when :meth:`start_new_chat` fails, for the chat
          that was selected before
        - ChatTemporaryToggled: from :meth:`toggle_temporary`
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
        self._chat_id: str | None = None
        self._messages: list[Message] = []
        self._loading = False
        self._busy = False

        self._bus.subscribe(ChatSelectionChanged, self._on_selection_changed)

    @property
    def chat_id(self) -> str | None:
        return self._chat_id

    @property
    def messages(self) -> list[Message]:
        return [message.copy() for message in self._messages]

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def busy(self) -> bool:
        """True while a send or regeneration awaits the assistant reply."""
        return self._busy

    @property
    def is_temporary(self) -> bool:
        return self._chat_id is not None and self._view.is_temporary(self._chat_id)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def open(self, chat_id: str) -> None:
        """Switch to ``chat_id`` and schedule its message load."""
        self._chat_id = chat_id
        self._messages = []
        self._gateway.spawn(self.load_messages(chat_id), label=f"load-messages:{chat_id}")

    async def load_messages(self, chat_id: str | None = None) -> bool:
        """Fetch messages; the result is dropped when the chat changed meanwhile."""
        target = chat_id or self._chat_id
        if target is None:
            return False
        self._loading = True
        try:
            messages = await self._gateway.call(
                "list_messages", self._store.list_messages, target
            )
        finally:
            self._loading = False
        if target != self._chat_id:
            LOGGER.debug("Discarding stale messages of %s (now %s)", target, self._chat_id)
            return False
        if messages is None:
            return False
        self._messages = list(messages)
        return True

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send_message(
        self, content: str, files: Attachments | None = None
    ) -> tuple[Message, Message | None] | None:
        """Append a user message, then the assistant reply.

        Without a current chat a new one is created first. The store
        activates a temporary thread on its first message, which lists it.

        Returns:
            ``(user_message, assistant_message)``, or None when the user
            message could not be stored. The reply is None when generation
            failed.
        """

        text = content.strip()
        if not text:
            return None
        if self._chat_id is None and await self.start_new_chat(force=True) is None:
            return None
        chat_id = self._chat_id
        assert chat_id is not None

        user_message = await self._gateway.call(
            "add_message", self._store.add_message, chat_id, "user", text, files
        )
        if user_message is None:
            return None
        if self._chat_id == chat_id:
            self._messages.append(user_message)
        self._view.suppress_auto_select = False

        self._busy = True
        try:
            reply = await self._gateway.call(
                "generate_response", self._store.generate_response, chat_id, text
            )
        finally:
            self._busy = False
        if reply is not None and self._chat_id == chat_id:
            self._messages.append(reply)
        return user_message, reply

    async def regenerate_from(self, message_id: str) -> Message | None:
        """Trim back to the user message owning ``message_id`` and ask again."""

        chat_id = self._chat_id
        if chat_id is None:
            return None
        user_content = await self._gateway.call(
            "trim_messages_from", self._store.trim_messages_from, chat_id, message_id
        )
        if user_content is None:
            LOGGER.debug("Nothing to regenerate from %s in chat %s", message_id, chat_id)
            return None
        await self.load_messages(chat_id)

        self._busy = True
        try:
            reply = await self._gateway.call(
                "generate_response", self._store.generate_response, chat_id, user_content
            )
        finally:
            self._busy = False
        if reply is not None and self._chat_id == chat_id:
            self._messages.append(reply)
        return reply

    async def rate_message(self, message_id: str, like: int) -> bool:
        updated = await self._gateway.call(
            "update_message_like",
            self._store.update_message_like,
            message_id,
            like,
            fallback=False,
        )
        if updated:
            for message in self._messages:
                if message.id == message_id:
                    message.like = max(-1, min(1, like))
        return bool(updated)

    # ------------------------------------------------------------------
    # New chat and overlay flag
    # ------------------------------------------------------------------

    async def start_new_chat(self, *, force: bool = False) -> Thread | None:
        """Open a fresh temporary chat.

        No-op while the current chat is still empty. Auto-selection is
        suppressed until the new chat is activated by its first message.
        """

        if not force and self._chat_id is not None and not self._messages:
            LOGGER.debug("Current chat %s is empty; not starting another", self._chat_id)
            return None

        previous = self._view.selected_chat_id
        self._view.suppress_auto_select = True
        self._bus.publish(HistorySelectionCleared(scope_key=self._view.scope_key))

        thread = await self._gateway.call(
            "create_thread", self._store.create_thread, NEW_CHAT_TITLE
        )
        if thread is None:
            self._view.suppress_auto_select = False
            if previous is not None:
                LOGGER.debug("New chat not created; restoring selection %s", previous)
                self._bus.publish(
                    HistoryChatSelected(scope_key=self._view.scope_key, chat_id=previous)
                )
            return None

        self._view.set_title(thread.id, thread.title)
        self._view.selected_chat_id = thread.id
        self._chat_id = thread.id
        self._messages = []
        self._bus.publish(NewChatCreated(new_chat=thread))
        # Point the other surfaces at the new chat; the selection controller
        # stays suppressed until activation.
        self._bus.publish(
            ChatSelectionChanged(scope_key=self._view.scope_key, chat_id=thread.id)
        )
        return thread

    def toggle_temporary(self) -> bool | None:
        chat_id = self._chat_id
        if chat_id is None:
            return None
        value = self._view.toggle_temporary(chat_id)
        self._bus.publish(
            ChatTemporaryToggled(
                scope_key=self._view.scope_key,
                chat_id=chat_id,
                is_temporary=value,
            )
        )
        return value

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_selection_changed(self, event: ChatSelectionChanged) -> None:
        if event.scope_key != self._view.scope_key:
            return
        if event.chat_id != self._chat_id:
            self.open(event.chat_id)
        title = self._view.title_for(event.chat_id)
        if title:
            self._bus.publish(
                ChatTitleUpdated(
                    scope_key=self._view.scope_key,
                    chat_id=event.chat_id,
                    new_title=title,
                )
            )
