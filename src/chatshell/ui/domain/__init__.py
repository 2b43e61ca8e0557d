"""Domain layer for the chat surfaces.

Domain Managers:
    - ChatViewState: Scoped view of the persistent local store
    - ThreadListModel: Thread-list panel display list
    - SelectionController: Active thread resolution
    - TitleEditingController: Inline title edit sessions
    - FolderManager: Folder membership and drag-and-drop routing
    - ActivationStateMachine: Temporary to listed transition of new threads
    - ConversationSession: Messages, sends and regeneration of the selected thread
    - MenuStateController: Side panel open state

All domain managers:
    - Receive dependencies via constructor injection
    - Talk to each other only through the event bus
    - Have no dependency on a widget toolkit
"""

from __future__ import annotations

from .activation import ActivationState, ActivationStateMachine
from .conversation import ConversationSession
from .folders import (
    GENERAL_FOLDER_ID,
    ChatFolder,
    FolderDropTarget,
    FolderError,
    FolderManager,
    FolderNotFoundError,
    ReservedFolderError,
    ThreadDropTarget,
)
from .menu_state import MenuStateController
from .selection import SelectionController, SelectionState
from .thread_list import ThreadListModel
from .title_editor import TitleEditSession, TitleEditingController
from .view_state import ChatViewState

__all__: list[str] = [
    "ActivationState",
    "ActivationStateMachine",
    "ChatFolder",
    "ChatViewState",
    "ConversationSession",
    "FolderDropTarget",
    "FolderError",
    "FolderManager",
    "FolderNotFoundError",
    "GENERAL_FOLDER_ID",
    "MenuStateController",
    "ReservedFolderError",
    "SelectionController",
    "SelectionState",
    "ThreadDropTarget",
    "ThreadListModel",
    "TitleEditSession",
    "TitleEditingController",
]
