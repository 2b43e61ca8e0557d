"""Open/closed state of the thread-list side panel."""

from __future__ import annotations

import logging

from ..events import EventBus, SecondLayerMenuStateChanged, SecondLayerMenuToggled
from .view_state import ChatViewState

LOGGER = logging.getLogger(__name__)


class MenuStateController:
    """Persists the panel-open flag and answers ``toggle-second-layer-menu``."""

    def __init__(self, event_bus: EventBus, view_state: ChatViewState, *, tab_id: str = "chat") -> None:
        self._bus = event_bus
        self._view = view_state
        self.tab_id = tab_id

        self._bus.subscribe(SecondLayerMenuToggled, self._on_toggled)

    @property
    def is_open(self) -> bool:
        return self._view.menu_open

    def set_open(self, is_open: bool) -> None:
        self._view.menu_open = is_open
        self.announce()

    def toggle(self) -> bool:
        self.set_open(not self.is_open)
        return self.is_open

    def announce(self) -> None:
        """Publish the current state, e.g. once the shell has mounted."""
        self._bus.publish(
            SecondLayerMenuStateChanged(
                scope_key=self._view.scope_key,
                tab_id=self.tab_id,
                is_open=self.is_open,
            )
        )

    def _on_toggled(self, event: SecondLayerMenuToggled) -> None:
        if event.scope_key != self._view.scope_key or event.tab_id != self.tab_id:
            return
        LOGGER.debug("Toggling side panel of %s/%s", event.scope_key, event.tab_id)
        self.toggle()
