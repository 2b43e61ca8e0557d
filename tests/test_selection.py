"""Tests for the selection controller."""

from __future__ import annotations

import pytest

from chatshell.ui.domain import ChatViewState, SelectionController, SelectionState
from chatshell.ui.events import (
    ChatSelectionChanged,
    EventBus,
    HistoryChatSelected,
    HistorySelectionCleared,
    ThreadListChanged,
)


@pytest.fixture
def controller(bus: EventBus, view_state: ChatViewState) -> SelectionController:
    return SelectionController(bus, view_state)


def _selected(bus: EventBus) -> list[ChatSelectionChanged]:
    received: list[ChatSelectionChanged] = []
    bus.subscribe(ChatSelectionChanged, received.append)
    return received


class TestReconcile:
    def test_empty_list_stays_unresolved(self, controller: SelectionController, bus: EventBus) -> None:
        received = _selected(bus)

        assert controller.reconcile(()) is None

        assert controller.state is SelectionState.UNRESOLVED
        assert received == []

    def test_falls_back_to_first_and_persists(
        self, controller: SelectionController, bus: EventBus, view_state: ChatViewState
    ) -> None:
        received = _selected(bus)

        bus.publish(ThreadListChanged(scope_key="chat", chat_ids=("a", "b")))

        assert controller.selected_chat_id == "a"
        assert controller.state is SelectionState.RESOLVED
        assert view_state.selected_chat_id == "a"
        assert [event.chat_id for event in received] == ["a"]

    def test_stored_selection_is_reaffirmed(
        self, controller: SelectionController, bus: EventBus, view_state: ChatViewState
    ) -> None:
        view_state.selected_chat_id = "b"
        received = _selected(bus)

        controller.reconcile(("a", "b"))
        controller.reconcile(("a", "b"))

        assert controller.selected_chat_id == "b"
        assert [event.chat_id for event in received] == ["b", "b"]

    def test_stale_stored_selection_is_replaced(
        self, controller: SelectionController, view_state: ChatViewState
    ) -> None:
        view_state.selected_chat_id = "gone"

        assert controller.reconcile(("a", "b")) == "a"
        assert view_state.selected_chat_id == "a"

    def test_suppression_keeps_selection_unresolved(
        self, controller: SelectionController, bus: EventBus, view_state: ChatViewState
    ) -> None:
        view_state.selected_chat_id = "b"
        view_state.suppress_auto_select = True
        received = _selected(bus)

        assert controller.reconcile(("a", "b")) is None

        assert controller.state is SelectionState.UNRESOLVED
        assert view_state.selected_chat_id == "b"
        assert received == []

    def test_other_scopes_are_ignored(self, controller: SelectionController, bus: EventBus) -> None:
        bus.publish(ThreadListChanged(scope_key="agent", chat_ids=("x",)))

        assert controller.selected_chat_id is None


class TestExplicitRequests:
    def test_history_selection_clears_suppression(
        self, controller: SelectionController, bus: EventBus, view_state: ChatViewState
    ) -> None:
        view_state.suppress_auto_select = True
        received = _selected(bus)

        bus.publish(HistoryChatSelected(scope_key="chat", chat_id="b"))

        assert view_state.suppress_auto_select is False
        assert view_state.selected_chat_id == "b"
        assert controller.state is SelectionState.RESOLVED
        assert [event.chat_id for event in received] == ["b"]

    def test_history_clear_removes_stored_selection(
        self, controller: SelectionController, bus: EventBus, view_state: ChatViewState
    ) -> None:
        controller.reconcile(("a",))

        bus.publish(HistorySelectionCleared(scope_key="chat"))

        assert controller.selected_chat_id is None
        assert controller.state is SelectionState.UNRESOLVED
        assert view_state.selected_chat_id is None

    def test_reconcile_after_clear_picks_first_again(self, controller: SelectionController) -> None:
        controller.reconcile(("a", "b"))
        controller.select("b")
        controller.clear()

        assert controller.reconcile() == "a"
