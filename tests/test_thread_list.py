"""Tests for the thread-list panel model."""

from __future__ import annotations

import pytest

from chatshell.chat.models import Thread
from chatshell.chat.thread_store import LatencyProfile, ThreadStore
from chatshell.ui.domain import ChatViewState, ThreadListModel
from chatshell.ui.events import ChatTitleUpdated, EventBus, NewChatCreated, ThreadListChanged
from chatshell.ui.infrastructure import BackendGateway


@pytest.fixture
def model(
    bus: EventBus, gateway: BackendGateway, thread_store: ThreadStore, view_state: ChatViewState
) -> ThreadListModel:
    return ThreadListModel(bus, gateway, thread_store, view_state)


def _changes(bus: EventBus) -> list[ThreadListChanged]:
    received: list[ThreadListChanged] = []
    bus.subscribe(ThreadListChanged, received.append)
    return received


def _seed(thread_store: ThreadStore, *titles: str) -> list[str]:
    return thread_store.seed([(title, [("user", title.lower())]) for title in titles])


@pytest.mark.asyncio
async def test_refresh_loads_backfills_and_announces(
    model: ThreadListModel, bus: EventBus, thread_store: ThreadStore, view_state: ChatViewState
) -> None:
    first, second = _seed(thread_store, "First", "Second")
    view_state.set_title(first, "Renamed locally")
    changes = _changes(bus)

    assert await model.refresh() is True

    assert model.loaded
    assert model.chat_ids == (second, first)
    assert view_state.titles() == {first: "Renamed locally", second: "Second"}
    assert model.display_title(first) == "Renamed locally"
    assert [event.chat_ids for event in changes] == [(second, first)]


@pytest.mark.asyncio
async def test_refresh_failure_keeps_current_list(
    bus: EventBus, gateway: BackendGateway, view_state: ChatViewState
) -> None:
    store = ThreadStore(latency=LatencyProfile(scale=0.0), event_bus=bus)
    _seed(store, "Kept")
    model = ThreadListModel(bus, gateway, store, view_state)
    await model.refresh()
    before = model.chat_ids
    store._fault_rate = 1.0

    assert await model.refresh() is False
    assert model.chat_ids == before


@pytest.mark.asyncio
async def test_new_chat_created_is_idempotent(model: ThreadListModel, bus: EventBus) -> None:
    changes = _changes(bus)
    listed = Thread(id="listed", title="Listed", is_temporary=False)

    bus.publish(NewChatCreated(new_chat=listed))
    bus.publish(NewChatCreated(new_chat=listed))

    assert model.chat_ids == ("listed",)
    assert len(changes) == 1


@pytest.mark.asyncio
async def test_temporary_new_chat_stays_hidden(
    model: ThreadListModel, bus: EventBus, recorder
) -> None:
    created = recorder(NewChatCreated)

    thread = await model.create_thread("Scratch")

    assert thread is not None and thread.is_temporary
    assert [event.new_chat.id for event in created.events] == [thread.id]
    assert model.chat_ids == ()


@pytest.mark.asyncio
async def test_delete_removes_locally(
    model: ThreadListModel, bus: EventBus, thread_store: ThreadStore
) -> None:
    first, second = _seed(thread_store, "First", "Second")
    await model.refresh()
    changes = _changes(bus)

    assert await model.delete_thread(first) is True
    assert model.chat_ids == (second,)
    assert [event.chat_ids for event in changes] == [(second,)]

    assert await model.delete_thread("missing") is False
    assert len(changes) == 1


@pytest.mark.asyncio
async def test_reorder_moves_to_target_slot(model: ThreadListModel, thread_store: ThreadStore) -> None:
    a, b, c = _seed(thread_store, "C", "B", "A")[::-1]
    await model.refresh()
    assert model.chat_ids == (a, b, c)

    assert model.reorder(a, c) is True
    assert model.chat_ids == (b, c, a)
    assert model.reorder(a, b) is True
    assert model.chat_ids == (a, b, c)
    assert model.reorder(a, a) is False
    assert model.reorder(a, "missing") is False


@pytest.mark.asyncio
async def test_overlay_temporary_threads_are_hidden(
    model: ThreadListModel, thread_store: ThreadStore, view_state: ChatViewState
) -> None:
    first, second = _seed(thread_store, "First", "Second")
    await model.refresh()

    view_state.set_temporary(first, True)

    assert [thread.id for thread in model.visible_threads()] == [second]
    assert model.chat_ids == (second, first)


@pytest.mark.asyncio
async def test_title_updates_apply_to_matching_scope(
    model: ThreadListModel, bus: EventBus, thread_store: ThreadStore
) -> None:
    (only,) = _seed(thread_store, "Only")
    await model.refresh()

    bus.publish(ChatTitleUpdated(scope_key="other", chat_id=only, new_title="Wrong scope"))
    bus.publish(ChatTitleUpdated(scope_key="chat", chat_id=only, new_title="Right scope"))

    thread = model.get(only)
    assert thread is not None and thread.title == "Right scope"
