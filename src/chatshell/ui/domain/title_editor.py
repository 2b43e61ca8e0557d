"""Inline title editing with live draft mirroring across surfaces."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from ..events import ChatSelectionChanged, ChatTitleTyping, ChatTitleUpdated, EventBus
from .view_state import ChatViewState

if TYPE_CHECKING:  # pragma: no cover
    from ...chat.thread_store import ThreadStore
    from ..infrastructure.backend_gateway import BackendGateway

LOGGER = logging.getLogger(__name__)

DEFAULT_SOURCE_TAG = "title-editor"


@dataclass(slots=True)
class TitleEditSession:
    """Draft state of one edit: ``original`` is restored on cancel."""

    chat_id: str
    original: str
    draft: str


class TitleEditingController:
    """Edit session for the title of the selected thread.

    ``title_resolver`` maps a chat id to its displayed title; by default only
    the persisted title map is consulted, so bootstrap passes the thread
    list's resolver, which falls back to the backend title.

    ``source_tag`` identifies this editor on ``chat-title-typing`` events;
    drafts carrying the same tag are echoes of our own typing and are
    ignored.

    Events Emitted:
        - ChatTitleTyping: on every :meth:`type`
        - ChatTitleUpdated: after a successful :meth:`commit`
    """

    def __init__(
        self,
        event_bus: EventBus,
        gateway: BackendGateway,
        store: ThreadStore,
        view_state: ChatViewState,
        *,
        source_tag: str = DEFAULT_SOURCE_TAG,
        title_resolver: Callable[[str], str | None] | None = None,
    ) -> None:
        self._bus = event_bus
        self._gateway = gateway
        self._store = store
        self._view = view_state
        self.source_tag = source_tag
        self._resolve_title = title_resolver or view_state.title_for
        self._chat_id: str | None = None
        self._title = ""
        self._live_title = ""
        self._session: TitleEditSession | None = None

        self._bus.subscribe(ChatSelectionChanged, self._on_selection_changed)
        self._bus.subscribe(ChatTitleUpdated, self._on_title_updated)
        self._bus.subscribe(ChatTitleTyping, self._on_title_typing)

    @property
    def chat_id(self) -> str | None:
        return self._chat_id

    @property
    def title(self) -> str:
        """Last committed (or announced) title of the tracked chat."""
        return self._title

    @property
    def live_title(self) -> str:
        """What the header shows right now, including mirrored drafts."""
        return self._live_title

    @property
    def session(self) -> TitleEditSession | None:
        return self._session

    @property
    def is_editing(self) -> bool:
        return self._session is not None

    def begin(self, chat_id: str | None = None) -> TitleEditSession | None:
        target = chat_id or self._chat_id
        if target is None:
            LOGGER.debug("TitleEditingController.begin: no chat selected")
            return None
        if target != self._chat_id:
            self._track(target)
        self._session = TitleEditSession(chat_id=target, original=self._title, draft=self._title)
        return self._session

    def type(self, value: str) -> None:
        session = self._session
        if session is None:
            return
        session.draft = value
        self._live_title = value
        self._bus.publish(
            ChatTitleTyping(
                scope_key=self._view.scope_key,
                chat_id=session.chat_id,
                new_title=value,
                source_tag=self.source_tag,
            )
        )

    async def commit(self) -> bool:
        """Persist the trimmed draft; an empty draft keeps the prior title.

        Returns:
            True when the new title was stored and announced.
        """

        session = self._session
        if session is None:
            return False
        self._session = None
        title = session.draft.strip()
        if not title:
            self._live_title = session.original
            return False

        updated = await self._gateway.call(
            "update_title", self._store.update_title, session.chat_id, title
        )
        if updated is None:
            LOGGER.warning(
                "Title of chat %s was not updated; keeping %r",
                session.chat_id,
                session.original,
            )
            if session.chat_id == self._chat_id:
                self._live_title = session.original
            return False

        self._view.set_title(session.chat_id, title)
        if session.chat_id == self._chat_id:
            self._title = title
            self._live_title = title
        self._bus.publish(
            ChatTitleUpdated(
                scope_key=self._view.scope_key,
                chat_id=session.chat_id,
                new_title=title,
            )
        )
        return True

    def cancel(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None
        if session.chat_id == self._chat_id:
            self._live_title = session.original

    def _track(self, chat_id: str) -> None:
        self._chat_id = chat_id
        self._title = self._resolve_title(chat_id) or ""
        self._live_title = self._title

    def _on_selection_changed(self, event: ChatSelectionChanged) -> None:
        if event.scope_key != self._view.scope_key or event.chat_id == self._chat_id:
            return
        self._session = None
        self._track(event.chat_id)

    def _on_title_updated(self, event: ChatTitleUpdated) -> None:
        if event.scope_key != self._view.scope_key or event.chat_id != self._chat_id:
            return
        self._title = event.new_title
        if self._session is None:
            self._live_title = event.new_title

    def _on_title_typing(self, event: ChatTitleTyping) -> None:
        if event.source_tag == self.source_tag:
            return
        if event.scope_key != self._view.scope_key or event.chat_id != self._chat_id:
            return
        self._live_title = event.new_title
        if self._session is not None and self._session.chat_id == event.chat_id:
            self._session.draft = event.new_title
