"""Folder manager: named groups of thread ids with one reserved folder.

Folders hold membership only; deleting a folder never deletes a thread.
Records are global (not scoped) and persisted under ``chat_folders`` as a
list of ``{id, name, created_at, chat_ids}`` objects.
"""

from __future__ import annotations

import logging
import random
import string
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence, Union

from jsonschema import Draft7Validator, ValidationError

from ...chat.models import Thread
from ...services.local_store import LocalStore
from ..events import ChatMovedToFolder, EventBus, ThreadListChanged
from .view_state import FOLDERS_KEY

if TYPE_CHECKING:  # pragma: no cover
    from .thread_list import ThreadListModel

LOGGER = logging.getLogger(__name__)

GENERAL_FOLDER_ID = "general"
GENERAL_FOLDER_NAME = "General"
_ID_ALPHABET = string.ascii_lowercase + string.digits

FOLDER_RECORD_SCHEMA: dict[str, Any] = {
    "type": "object",
    "required": ["id", "name"],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "name": {"type": "string"},
        "created_at": {"type": "integer", "minimum": 0},
        "chat_ids": {"type": "array", "items": {"type": "string"}},
    },
}
_FOLDER_VALIDATOR = Draft7Validator(FOLDER_RECORD_SCHEMA)


class FolderError(ValueError):
    """Invalid folder operation (e.g. an empty name)."""


class ReservedFolderError(FolderError):
    """The reserved General folder cannot be renamed or deleted."""

    def __init__(self, action: str) -> None:
        super().__init__(f"Cannot {action} the {GENERAL_FOLDER_NAME} folder")
        self.action = action


class FolderNotFoundError(FolderError, LookupError):
    def __init__(self, folder_id: str) -> None:
        super().__init__(f"Folder {folder_id} not found")
        self.folder_id = folder_id


@dataclass(slots=True)
class ChatFolder:
    id: str
    name: str
    created_at: int = field(default_factory=lambda: int(time.time() * 1000))
    chat_ids: list[str] = field(default_factory=list)

    @property
    def is_reserved(self) -> bool:
        return self.id == GENERAL_FOLDER_ID

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at,
            "chat_ids": list(self.chat_ids),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "ChatFolder":
        chat_ids = payload.get("chat_ids") or []
        return cls(
            id=str(payload["id"]),
            name=str(payload.get("name") or ""),
            created_at=int(payload.get("created_at") or 0),
            chat_ids=[str(chat_id) for chat_id in chat_ids],
        )

    def copy(self) -> "ChatFolder":
        return ChatFolder(self.id, self.name, self.created_at, list(self.chat_ids))


@dataclass(slots=True, frozen=True)
class FolderDropTarget:
    """Drop onto a folder header."""

    folder_id: str | None


@dataclass(slots=True, frozen=True)
class ThreadDropTarget:
    """Drop onto another thread item."""

    chat_id: str


DropTarget = Union[FolderDropTarget, ThreadDropTarget]


class FolderManager:
    """Domain manager for chat folders.

    Invariants:
        - the General folder always exists, first in the list;
        - a thread id belongs to at most one folder.

    Events Emitted:
        - ChatMovedToFolder: for every thread whose folder changed
    """

    def __init__(
        self,
        event_bus: EventBus,
        store: LocalStore,
        *,
        thread_list: ThreadListModel | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._bus = event_bus
        self._store = store
        self._thread_list = thread_list
        self._rng = rng or random.Random()
        self._folders: list[ChatFolder] = self._load()

        self._bus.subscribe(ThreadListChanged, self._on_thread_list_changed)

    @property
    def folders(self) -> list[ChatFolder]:
        return [folder.copy() for folder in self._folders]

    def get(self, folder_id: str) -> ChatFolder | None:
        folder = self._find(folder_id)
        return folder.copy() if folder is not None else None

    # ------------------------------------------------------------------
    # Folder lifecycle
    # ------------------------------------------------------------------

    def create(self, name: str) -> ChatFolder:
        clean = _clean_name(name)
        now_ms = int(time.time() * 1000)
        suffix = "".join(self._rng.choice(_ID_ALPHABET) for _ in range(9))
        folder = ChatFolder(id=f"folder_{now_ms}_{suffix}", name=clean, created_at=now_ms)
        self._folders.append(folder)
        self._save()
        LOGGER.debug("Created folder %s (%s)", folder.id, folder.name)
        return folder.copy()

    def rename(self, folder_id: str, name: str) -> ChatFolder:
        if folder_id == GENERAL_FOLDER_ID:
            raise ReservedFolderError("rename")
        folder = self._require(folder_id)
        folder.name = _clean_name(name)
        self._save()
        return folder.copy()

    def delete(self, folder_id: str) -> list[str]:
        """Remove a folder; its members move to General.

        Returns:
            The ids that were migrated.

        Raises:
            ReservedFolderError: For the General folder.
            FolderNotFoundError: For an unknown id.
        """

        if folder_id == GENERAL_FOLDER_ID:
            raise ReservedFolderError("delete")
        folder = self._require(folder_id)
        general = self._general()
        migrated = [chat_id for chat_id in folder.chat_ids if chat_id not in general.chat_ids]
        general.chat_ids.extend(migrated)
        self._folders.remove(folder)
        self._save()
        LOGGER.debug("Deleted folder %s, moved %d chat(s) to General", folder_id, len(migrated))
        for chat_id in migrated:
            self._bus.publish(ChatMovedToFolder(chat_id=chat_id, folder_id=GENERAL_FOLDER_ID))
        return migrated

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    def move_thread(self, chat_id: str, target_folder_id: str | None = None) -> ChatFolder:
        """Reassign ``chat_id`` to the target folder (General when None).

        Raises:
            FolderNotFoundError: For an unknown target; nothing is changed.
        """

        target = self._require(target_folder_id or GENERAL_FOLDER_ID)
        for folder in self._folders:
            if chat_id in folder.chat_ids:
                folder.chat_ids = [existing for existing in folder.chat_ids if existing != chat_id]
        target.chat_ids.append(chat_id)
        self._save()
        self._bus.publish(ChatMovedToFolder(chat_id=chat_id, folder_id=target.id))
        return target.copy()

    def initialize_threads(self, chat_ids: Iterable[str]) -> list[str]:
        """Add ids that no folder contains yet to General; safe to repeat."""

        assigned = {chat_id for folder in self._folders for chat_id in folder.chat_ids}
        added: list[str] = []
        for chat_id in chat_ids:
            if chat_id in assigned:
                continue
            assigned.add(chat_id)
            added.append(chat_id)
        if added:
            self._general().chat_ids.extend(added)
            self._save()
            LOGGER.debug("Assigned %d unfiled chat(s) to General", len(added))
        return added

    def chats_in_folder(self, folder_id: str) -> list[str]:
        folder = self._find(folder_id)
        return list(folder.chat_ids) if folder is not None else []

    def threads_in_folder(self, folder_id: str, threads: Sequence[Thread]) -> list[Thread]:
        """Filter ``threads`` (display order kept) down to members of ``folder_id``."""

        members = set(self.chats_in_folder(folder_id))
        return [thread for thread in threads if thread.id in members]

    def folder_of(self, chat_id: str) -> str | None:
        for folder in self._folders:
            if chat_id in folder.chat_ids:
                return folder.id
        return None

    # ------------------------------------------------------------------
    # Drag and drop
    # ------------------------------------------------------------------

    def handle_drag_end(self, active_chat_id: str, target: DropTarget | None) -> bool:
        """Route a finished drag of a thread item.

        A folder target reassigns membership. A different thread target only
        reorders the thread-list display. Returns whether anything changed.
        """

        if target is None:
            return False
        if isinstance(target, FolderDropTarget):
            try:
                self.move_thread(active_chat_id, target.folder_id)
            except FolderNotFoundError:
                LOGGER.warning(
                    "Dropped chat %s on unknown folder %s", active_chat_id, target.folder_id
                )
                return False
            return True
        if target.chat_id == active_chat_id or self._thread_list is None:
            return False
        return self._thread_list.reorder(active_chat_id, target.chat_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _on_thread_list_changed(self, event: ThreadListChanged) -> None:
        self.initialize_threads(event.chat_ids)

    def _find(self, folder_id: str) -> ChatFolder | None:
        for folder in self._folders:
            if folder.id == folder_id:
                return folder
        return None

    def _require(self, folder_id: str) -> ChatFolder:
        folder = self._find(folder_id)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    def _general(self) -> ChatFolder:
        return self._require(GENERAL_FOLDER_ID)

    def _load(self) -> list[ChatFolder]:
        payload = self._store.get(FOLDERS_KEY, [])
        folders: list[ChatFolder] = []
        if isinstance(payload, list):
            for item in payload:
                try:
                    _FOLDER_VALIDATOR.validate(item)
                except ValidationError as error:
                    LOGGER.warning(
                        "Skipping malformed folder record %r: %s",
                        item,
                        _format_validation_error(error),
                    )
                    continue
                folders.append(ChatFolder.from_dict(item))
        folders, repaired = _dedupe(folders)
        if not any(folder.is_reserved for folder in folders):
            folders.insert(0, ChatFolder(id=GENERAL_FOLDER_ID, name=GENERAL_FOLDER_NAME))
            repaired = True
        if repaired:
            self._store.set(FOLDERS_KEY, [folder.to_dict() for folder in folders])
        return folders

    def _save(self) -> None:
        self._store.set(FOLDERS_KEY, [folder.to_dict() for folder in self._folders])


def _clean_name(name: str) -> str:
    clean = (name or "").strip()
    if not clean:
        raise FolderError("Folder name cannot be empty")
    return clean


def _format_validation_error(error: ValidationError) -> str:
    path = ".".join(str(part) for part in error.path)
    if path:
        return f"{path}: {error.message}"
    return error.message


def _dedupe(folders: list[ChatFolder]) -> tuple[list[ChatFolder], bool]:
    """Drop repeated folder ids and repeated chat ids; the first occurrence wins.

    Returns the cleaned folders and whether anything was dropped.
    """
    kept: list[ChatFolder] = []
    folder_ids: set[str] = set()
    chat_ids: set[str] = set()
    changed = False
    for folder in folders:
        if folder.id in folder_ids:
            LOGGER.warning("Dropping duplicate folder record %s", folder.id)
            changed = True
            continue
        folder_ids.add(folder.id)
        members = []
        for chat_id in folder.chat_ids:
            if chat_id in chat_ids:
                LOGGER.warning(
                    "Chat %s is filed more than once; dropping it from folder %s",
                    chat_id,
                    folder.id,
                )
                changed = True
                continue
            chat_ids.add(chat_id)
            members.append(chat_id)
        folder.chat_ids = members
        kept.append(folder)
    return kept, changed
