"""Chat shell bootstrap.

Creates one event bus, one local store, one thread store and every chat
controller for a scope key, wired through the bus and constructor
injection.

The bootstrap process:
1. Creates the event bus and the local store
2. Creates the thread store (seeded when requested) and the backend gateway
3. Creates the domain managers, thread list first so it sees list changes
   before the controllers that react to them
4. Returns them bundled in a :class:`ChatShell`

Usage:
    from chatshell.ui.bootstrap import create_chat_shell

    shell = create_chat_shell(settings)
    await shell.start()
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from pathlib import Path

from ..chat.seed import seed_store
from ..chat.thread_store import LatencyProfile, ThreadStore
from ..services.local_store import LocalStore
from ..services.settings import Settings
from .domain import (
    ActivationStateMachine,
    ChatViewState,
    ConversationSession,
    FolderManager,
    MenuStateController,
    SelectionController,
    ThreadListModel,
    TitleEditingController,
)
from .events import EventBus
from .infrastructure import BackendGateway

_LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ChatShell:
    """Every component of one chat scope. Holding it keeps the handlers alive."""

    settings: Settings
    event_bus: EventBus
    local_store: LocalStore
    view_state: ChatViewState
    thread_store: ThreadStore
    gateway: BackendGateway
    thread_list: ThreadListModel
    selection: SelectionController
    title_editor: TitleEditingController
    folders: FolderManager
    activation: ActivationStateMachine
    conversation: ConversationSession
    menu: MenuStateController
    seeded_ids: list[str] = field(default_factory=list)

    @property
    def scope_key(self) -> str:
        return self.view_state.scope_key

    async def start(self) -> None:
        """Announce the panel state and load the thread list."""
        self.menu.announce()
        await self.thread_list.refresh()
        await self.gateway.drain()

    async def settle(self) -> None:
        """Wait for background work triggered by events (loads, refreshes)."""
        await self.gateway.drain()

    async def close(self) -> None:
        await self.gateway.drain()
        self.event_bus.clear()


def create_chat_shell(
    settings: Settings | None = None,
    *,
    local_store: LocalStore | None = None,
    store_dir: Path | None = None,
    thread_store: ThreadStore | None = None,
    event_bus: EventBus | None = None,
    rng: random.Random | None = None,
) -> ChatShell:
    """Create and wire all chat components.

    Args:
        settings: Effective settings; defaults when omitted.
        local_store: Pre-built local store. When None, one is opened at the
            configured path.
        store_dir: Directory the local store defaults to when
            ``local_store_path`` is unset, normally the settings file's
            directory.
        thread_store: Pre-built thread store. When None, a new one is created
            from the latency settings and seeded if ``seed_samples`` is set.
        event_bus: Pre-built bus, e.g. shared with other surfaces.
        rng: Random source for latency jitter and folder ids.
    """
    settings = settings or Settings()
    _LOGGER.info("Bootstrapping chat shell for scope %s", settings.scope_key)

    # =========================================================================
    # 1. Event bus and local store
    # =========================================================================
    event_bus = event_bus or EventBus()
    if local_store is None:
        local_store = LocalStore(settings.resolve_store_path(store_dir))
        _LOGGER.debug("Opened local store at %s", local_store.path)
    view_state = ChatViewState(local_store, settings.scope_key)

    # =========================================================================
    # 2. Backend
    # =========================================================================
    seeded_ids: list[str] = []
    if thread_store is None:
        thread_store = ThreadStore(
            latency=LatencyProfile(scale=settings.latency_scale, jitter=settings.latency_jitter),
            event_bus=event_bus,
            assistant_model=settings.assistant_model,
            fault_rate=settings.fault_rate,
            rng=rng,
        )
        if settings.seed_samples:
            seeded_ids = seed_store(thread_store)
            _LOGGER.debug("Seeded %d sample thread(s)", len(seeded_ids))
    gateway = BackendGateway(
        max_attempts=settings.max_retries,
        retry_min_seconds=settings.retry_min_seconds,
        retry_max_seconds=settings.retry_max_seconds,
    )

    # =========================================================================
    # 3. Domain managers
    # =========================================================================
    thread_list = ThreadListModel(event_bus, gateway, thread_store, view_state)
    folders = FolderManager(event_bus, local_store, thread_list=thread_list, rng=rng)
    selection = SelectionController(event_bus, view_state)
    conversation = ConversationSession(event_bus, gateway, thread_store, view_state)
    title_editor = TitleEditingController(
        event_bus, gateway, thread_store, view_state, title_resolver=thread_list.display_title
    )
    activation = ActivationStateMachine(event_bus, view_state, thread_list, gateway)
    menu = MenuStateController(event_bus, view_state)
    _LOGGER.debug("Created chat domain managers")

    return ChatShell(
        settings=settings,
        event_bus=event_bus,
        local_store=local_store,
        view_state=view_state,
        thread_store=thread_store,
        gateway=gateway,
        thread_list=thread_list,
        selection=selection,
        title_editor=title_editor,
        folders=folders,
        activation=activation,
        conversation=conversation,
        menu=menu,
        seeded_ids=seeded_ids,
    )
