"""Thread and message records owned by the thread store."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import PurePath
from typing import Any, Dict, Literal, Mapping, Optional

__all__ = [
    "ChatRole",
    "FileAttachment",
    "Message",
    "SearchHit",
    "Thread",
    "ThreadStats",
    "estimate_tokens",
    "utcnow",
]

ChatRole = Literal["user", "assistant"]
_CHARS_PER_TOKEN = 4


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""

    return datetime.now(timezone.utc)


def estimate_tokens(text: str) -> int:
    """Rough token estimate used for every aggregate: one token per 4 chars."""

    return math.ceil(len(text) / _CHARS_PER_TOKEN)


@dataclass(slots=True, frozen=True)
class FileAttachment:
    """Descriptor of the single file a message may carry."""

    name: str
    size: int = 0

    @property
    def extension(self) -> str | None:
        suffix = PurePath(self.name).suffix
        return suffix[1:] if suffix else None

    @classmethod
    def from_value(cls, value: "FileAttachment | Mapping[str, Any] | str") -> "FileAttachment":
        """Coerce a mapping (``{"name", "size"}``) or bare name into an attachment."""

        if isinstance(value, FileAttachment):
            return value
        if isinstance(value, str):
            return cls(name=value)
        name = str(value.get("name") or "Unknown")
        try:
            size = int(value.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        return cls(name=name, size=size)


@dataclass(slots=True)
class Message:
    """A single chat message inside a thread."""

    id: str
    thread_id: str
    role: ChatRole
    content: str
    created_at: datetime = field(default_factory=utcnow)
    attachment: Optional[FileAttachment] = None
    finish_reason: str = "stop"
    is_truncated: bool = False
    model_name: str | None = None
    like: int = 0

    @property
    def size_chars(self) -> int:
        return len(self.content)

    @property
    def size_tokens(self) -> int:
        return estimate_tokens(self.content)

    def copy(self) -> "Message":
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize the message for display layers and logs."""

        payload: Dict[str, Any] = {
            "id": self.id,
            "thread_id": self.thread_id,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
            "size_chars": self.size_chars,
            "size_tokens": self.size_tokens,
            "finish_reason": self.finish_reason,
            "is_truncated": self.is_truncated,
            "like": self.like,
        }
        if self.model_name:
            payload["model_name"] = self.model_name
        if self.attachment is not None:
            payload["attachment"] = {
                "name": self.attachment.name,
                "size": self.attachment.size,
                "extension": self.attachment.extension,
            }
        return payload


@dataclass(slots=True)
class Thread:
    """Canonical conversation record.

    ``size_chars``/``size_tokens``/``last_msg_at`` are owned by the store and
    always reflect the retained messages of the thread.
    """

    id: str
    title: str
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_msg_at: datetime = field(default_factory=utcnow)
    size_chars: int = 0
    size_tokens: int = 0
    is_active: bool = True
    is_deleted: bool = False
    is_pinned: bool = False
    is_temporary: bool = True

    @property
    def is_listed(self) -> bool:
        """Whether the default listing shows this thread."""

        return self.is_active and not self.is_deleted and not self.is_temporary

    def copy(self) -> "Thread":
        return replace(self)


@dataclass(slots=True, frozen=True)
class ThreadStats:
    """Summary figures for one thread."""

    message_count: int
    total_chars: int
    total_tokens: int
    last_activity: datetime


@dataclass(slots=True, frozen=True)
class SearchHit:
    """Messages of one thread matching a search query."""

    thread_id: str
    messages: tuple[Message, ...]
