"""Event bus infrastructure for the chat surfaces.

Surfaces never call each other: the thread list, the conversation view and
the title editor only talk through the events declared here. The set of
events is closed; :data:`EVENT_TYPES` maps every wire name to its class.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, fields
from typing import (
    Any,
    Callable,
    ClassVar,
    Generic,
    Mapping,
    TypeVar,
    Union,
    TYPE_CHECKING,
)
from weakref import WeakMethod

from ..chat.models import Thread

if TYPE_CHECKING:  # pragma: no cover - imports for type checking only
    from typing import DefaultDict

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound="Event")

Handler = Callable[[E], None]


class UnknownEventError(KeyError):
    """Raised when a wire name does not belong to the closed event set."""


@dataclass(slots=True)
class Event:
    """Base class for all events in the system.

    Subclasses set ``name`` to the wire name used by :meth:`EventBus.publish_named`.
    """

    name: ClassVar[str] = ""


# High-frequency event types that should not log each publish
_QUIET_EVENT_TYPES: set[type] = set()


# =============================================================================
# Selection
# =============================================================================


@dataclass(slots=True)
class ChatSelectionChanged(Event):
    """The active thread of a scope was (re)affirmed.

    Published on every reconciliation, not only on change, so surfaces that
    mount late converge on the current selection.
    """

    name: ClassVar[str] = "chat-selection-change"

    scope_key: str
    chat_id: str


@dataclass(slots=True)
class HistorySelectionCleared(Event):
    """Request that the thread-list panel drop its selection."""

    name: ClassVar[str] = "clear-history-selection"

    scope_key: str


@dataclass(slots=True)
class HistoryChatSelected(Event):
    """Request that the thread-list panel select ``chat_id``."""

    name: ClassVar[str] = "select-history-chat"

    scope_key: str
    chat_id: str


# =============================================================================
# Titles and flags
# =============================================================================


@dataclass(slots=True)
class ChatTitleTyping(Event):
    """Uncommitted title draft, emitted on every keystroke.

    Attributes:
        source_tag: Identity of the emitting editor; an editor ignores
            drafts carrying its own tag.
    """

    name: ClassVar[str] = "chat-title-typing"

    scope_key: str
    chat_id: str
    new_title: str
    source_tag: str


_QUIET_EVENT_TYPES.add(ChatTitleTyping)


@dataclass(slots=True)
class ChatTitleUpdated(Event):
    """A title was committed (or re-announced from the title map)."""

    name: ClassVar[str] = "chat-title-update"

    scope_key: str
    chat_id: str
    new_title: str


@dataclass(slots=True)
class ChatTemporaryToggled(Event):
    """The local temporary overlay flag of a thread changed."""

    name: ClassVar[str] = "chat-temp-toggle"

    scope_key: str
    chat_id: str
    is_temporary: bool


# =============================================================================
# Thread lifecycle
# =============================================================================


@dataclass(slots=True)
class ChatActivated(Event):
    """A temporary thread received its first message and is now listed."""

    name: ClassVar[str] = "chat-activated"

    chat_id: str


@dataclass(slots=True)
class NewChatCreated(Event):
    """A thread was created by one surface; others add it if missing."""

    name: ClassVar[str] = "new-chat-created"

    new_chat: Thread


@dataclass(slots=True)
class ThreadListChanged(Event):
    """The thread-list panel's display list changed (ids in display order)."""

    name: ClassVar[str] = "thread-list-changed"

    scope_key: str
    chat_ids: tuple[str, ...]


@dataclass(slots=True)
class ChatMovedToFolder(Event):
    """A thread was reassigned to ``folder_id``."""

    name: ClassVar[str] = "chat-moved-to-folder"

    chat_id: str
    folder_id: str


# =============================================================================
# Panel
# =============================================================================


@dataclass(slots=True)
class SecondLayerMenuToggled(Event):
    """Request to flip the open state of a tab's side panel."""

    name: ClassVar[str] = "toggle-second-layer-menu"

    scope_key: str
    tab_id: str


@dataclass(slots=True)
class SecondLayerMenuStateChanged(Event):
    """Announcement of a side panel's open state."""

    name: ClassVar[str] = "second-layer-menu-state-change"

    scope_key: str
    tab_id: str
    is_open: bool


ChatEvent = Union[
    ChatSelectionChanged,
    HistorySelectionCleared,
    HistoryChatSelected,
    ChatTitleTyping,
    ChatTitleUpdated,
    ChatTemporaryToggled,
    ChatActivated,
    NewChatCreated,
    ThreadListChanged,
    ChatMovedToFolder,
    SecondLayerMenuToggled,
    SecondLayerMenuStateChanged,
]

EVENT_TYPES: Mapping[str, type[Event]] = {
    cls.name: cls for cls in ChatEvent.__args__  # type: ignore[attr-defined]
}


def event_from_payload(event_name: str, payload: Mapping[str, Any]) -> Event:
    """Build the event registered under ``event_name`` from a payload mapping.

    Raises:
        UnknownEventError: If ``event_name`` is not a registered event.
        TypeError: If the payload does not match the event's fields.
    """

    try:
        event_type = EVENT_TYPES[event_name]
    except KeyError:
        raise UnknownEventError(event_name) from None
    allowed = {item.name for item in fields(event_type)}
    unexpected = sorted(set(payload) - allowed)
    if unexpected:
        raise TypeError(f"{event_name} does not accept {', '.join(unexpected)}")
    return event_type(**payload)


class EventBus(Generic[E]):
    """Synchronous broadcast channel shared by every chat surface.

    :meth:`publish` delivers to the handlers that were registered when it was
    called, in the order they subscribed, and returns once all of them ran.
    A handler added or removed during delivery only affects later publishes.
    Nothing is replayed for late subscribers.

    Example::

        bus = EventBus()
        bus.subscribe(ChatActivated, lambda event: print(event.chat_id))
        bus.publish(ChatActivated(chat_id="thread-1"))

    Thread Safety:
        Not thread-safe. Use it from the asyncio loop's thread only.
    """

    __slots__ = ("_subscriptions",)

    def __init__(self) -> None:
        self._subscriptions: DefaultDict[type[Event], list[_Subscription]] = defaultdict(list)

    def subscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Deliver every later ``event_type`` publish to ``handler``.

        Bound methods are held weakly so a discarded surface drops out on its
        own. Subscribing the same handler twice delivers each event twice.
        """
        self._subscriptions[event_type].append(_Subscription.wrap(handler))
        LOGGER.debug("%s subscribed to %s", _describe(handler), event_type.__name__)

    def unsubscribe(self, event_type: type[E], handler: Handler[E]) -> None:
        """Drop the earliest registration of ``handler``, if there is one."""
        subscriptions = self._subscriptions.get(event_type, [])
        index = next(
            (i for i, sub in enumerate(subscriptions) if sub.refers_to(handler)),
            None,
        )
        if index is None:
            return
        del subscriptions[index]
        LOGGER.debug("%s unsubscribed from %s", _describe(handler), event_type.__name__)

    def publish(self, event: E) -> None:
        """Hand ``event`` to its current subscribers.

        A failing handler is logged and skipped; delivery continues with the
        next one.
        """
        event_type = type(event)
        subscriptions = self._subscriptions.get(event_type)
        quiet = event_type in _QUIET_EVENT_TYPES
        if not subscriptions:
            if not quiet:
                LOGGER.debug("%s published with no subscribers", event_type.__name__)
            return

        recipients = list(subscriptions)
        if not quiet:
            LOGGER.debug("Publishing %s to %d subscriber(s)", event_type.__name__, len(recipients))

        expired = False
        for subscription in recipients:
            handler = subscription.target()
            if handler is None:
                expired = True
                continue
            try:
                handler(event)
            except Exception:
                LOGGER.exception(
                    "%s raised exception while handling %s",
                    _describe(handler),
                    event_type.__name__,
                )

        if expired:
            subscriptions[:] = [sub for sub in subscriptions if sub.target() is not None]

    def publish_named(self, event_name: str, **payload: Any) -> Event:
        """Publish by wire name, e.g. ``publish_named("chat-activated", chat_id="t1")``.

        Returns:
            The event instance that was published.

        Raises:
            UnknownEventError: If ``event_name`` is not a registered event.
        """
        event = event_from_payload(event_name, payload)
        self.publish(event)  # type: ignore[arg-type]
        return event

    def clear(self) -> None:
        self._subscriptions.clear()
        LOGGER.debug("Dropped every subscription")

    def handler_count(self, event_type: type[E] | None = None) -> int:
        """Number of live registrations for ``event_type``, or for all types."""
        if event_type is None:
            return sum(len(subs) for subs in self._subscriptions.values())
        return len(self._subscriptions.get(event_type, ()))


@dataclass(slots=True, eq=False)
class _Subscription:
    """One registration: a weak reference for bound methods, the callable otherwise."""

    reference: Union[WeakMethod, Handler]
    weak: bool

    @classmethod
    def wrap(cls, handler: Handler) -> "_Subscription":
        if inspect.ismethod(handler):
            return cls(WeakMethod(handler), weak=True)
        return cls(handler, weak=False)

    def target(self) -> Handler | None:
        if self.weak:
            return self.reference()  # type: ignore[call-arg]
        return self.reference  # type: ignore[return-value]

    def refers_to(self, handler: Handler) -> bool:
        current = self.target()
        return current is not None and current == handler


def _describe(handler: Handler) -> str:
    if inspect.ismethod(handler):
        return f"{type(handler.__self__).__name__}.{handler.__func__.__name__}"
    return getattr(handler, "__qualname__", None) or repr(handler)


__all__ = [
    "Event",
    "EventBus",
    "Handler",
    "UnknownEventError",
    "ChatEvent",
    "EVENT_TYPES",
    "event_from_payload",
    "ChatSelectionChanged",
    "HistorySelectionCleared",
    "HistoryChatSelected",
    "ChatTitleTyping",
    "ChatTitleUpdated",
    "ChatTemporaryToggled",
    "ChatActivated",
    "NewChatCreated",
    "ThreadListChanged",
    "ChatMovedToFolder",
    "SecondLayerMenuToggled",
    "SecondLayerMenuStateChanged",
]
