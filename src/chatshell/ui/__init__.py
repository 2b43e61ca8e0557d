"""Headless chat surfaces: event bus, domain managers and bootstrap."""

from .bootstrap import ChatShell, create_chat_shell
from .events import EventBus

__all__ = [
    # Bootstrap
    "ChatShell",
    "create_chat_shell",
    # Event Bus
    "EventBus",
]
