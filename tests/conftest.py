"""Shared pytest fixtures."""

from __future__ import annotations

import random
from typing import Callable

import pytest

from chatshell.chat.thread_store import LatencyProfile, ThreadStore
from chatshell.services.local_store import LocalStore
from chatshell.services.settings import Settings
from chatshell.ui.bootstrap import ChatShell, create_chat_shell
from chatshell.ui.domain import ChatViewState
from chatshell.ui.events import Event, EventBus
from chatshell.ui.infrastructure import BackendGateway


class EventRecorder:
    """Collects every published event of the given types, in order."""

    def __init__(self, bus: EventBus, *event_types: type[Event]) -> None:
        self.events: list[Event] = []
        for event_type in event_types:
            bus.subscribe(event_type, self.events.append)

    def of_type(self, event_type: type[Event]) -> list[Event]:
        return [event for event in self.events if isinstance(event, event_type)]

    def clear(self) -> None:
        self.events.clear()


@pytest.fixture
def fast_settings() -> Settings:
    return Settings(
        latency_scale=0.0,
        latency_jitter=0.0,
        seed_samples=False,
        retry_min_seconds=0.0,
        retry_max_seconds=0.0,
    )


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def local_store() -> LocalStore:
    return LocalStore()


@pytest.fixture
def view_state(local_store: LocalStore) -> ChatViewState:
    return ChatViewState(local_store, "chat")


@pytest.fixture
def thread_store(bus: EventBus) -> ThreadStore:
    return ThreadStore(latency=LatencyProfile(scale=0.0), event_bus=bus, rng=random.Random(3))


@pytest.fixture
def gateway() -> BackendGateway:
    return BackendGateway(max_attempts=2, retry_min_seconds=0.0, retry_max_seconds=0.0)


@pytest.fixture
def recorder(bus: EventBus) -> Callable[..., EventRecorder]:
    def factory(*event_types: type[Event]) -> EventRecorder:
        return EventRecorder(bus, *event_types)

    return factory


@pytest.fixture
def make_shell(fast_settings: Settings) -> Callable[..., ChatShell]:
    """Build a fully wired shell with no latency and an in-memory local store."""

    def factory(*, seed: bool = False, local_store: LocalStore | None = None, **overrides) -> ChatShell:
        settings = Settings(**{**_as_kwargs(fast_settings), "seed_samples": seed, **overrides})
        return create_chat_shell(
            settings,
            local_store=local_store if local_store is not None else LocalStore(),
            rng=random.Random(11),
        )

    return factory


def _as_kwargs(settings: Settings) -> dict:
    return {name: getattr(settings, name) for name in Settings.__dataclass_fields__}
