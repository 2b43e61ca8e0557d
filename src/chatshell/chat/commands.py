"""Parsing of slash commands typed into the chat console."""

from __future__ import annotations

import shlex
from dataclasses import dataclass
from enum import Enum
from typing import Mapping

__all__ = [
    "CommandType",
    "ConsoleCommand",
    "COMMAND_HELP",
    "is_console_command",
    "parse_console_command",
]


class CommandType(str, Enum):
    """Console commands handled locally; anything else is sent as a message."""

    LIST = "list"
    NEW = "new"
    SELECT = "select"
    DELETE = "delete"
    TITLE = "title"
    TEMP = "temp"
    REGEN = "regen"
    SEARCH = "search"
    STATS = "stats"
    FOLDERS = "folders"
    MKDIR = "mkdir"
    RENAME_FOLDER = "rename-folder"
    RMDIR = "rmdir"
    MOVE = "mv"
    MENU = "menu"
    HELP = "help"
    QUIT = "quit"


@dataclass(slots=True, frozen=True)
class ConsoleCommand:
    """Parsed representation of a console command line."""

    command: CommandType
    args: tuple[str, ...]
    raw: str

    @property
    def text(self) -> str:
        """Arguments joined back into free text (titles, queries, names)."""
        return " ".join(self.args)


_PREFIX = "/"
_ALIASES: Mapping[str, CommandType] = {
    **{member.value: member for member in CommandType},
    "ls": CommandType.LIST,
    "open": CommandType.SELECT,
    "rm": CommandType.DELETE,
    "rename": CommandType.TITLE,
    "regenerate": CommandType.REGEN,
    "find": CommandType.SEARCH,
    "move": CommandType.MOVE,
    "exit": CommandType.QUIT,
    "q": CommandType.QUIT,
    "?": CommandType.HELP,
}
# (minimum, maximum) positional arguments; None = unbounded.
_ARITY: Mapping[CommandType, tuple[int, int | None]] = {
    CommandType.LIST: (0, 0),
    CommandType.NEW: (0, 0),
    CommandType.SELECT: (1, 1),
    CommandType.DELETE: (1, 1),
    CommandType.TITLE: (1, None),
    CommandType.TEMP: (0, 0),
    CommandType.REGEN: (0, 1),
    CommandType.SEARCH: (1, None),
    CommandType.STATS: (0, 1),
    CommandType.FOLDERS: (0, 0),
    CommandType.MKDIR: (1, None),
    CommandType.RENAME_FOLDER: (2, None),
    CommandType.RMDIR: (1, 1),
    CommandType.MOVE: (1, 2),
    CommandType.MENU: (0, 0),
    CommandType.HELP: (0, 0),
    CommandType.QUIT: (0, 0),
}

COMMAND_HELP: Mapping[CommandType, str] = {
    CommandType.LIST: "/list                      show recent chats (with folders)",
    CommandType.NEW: "/new                       start a new chat",
    CommandType.SELECT: "/select N|ID               open a chat by list number or id prefix",
    CommandType.DELETE: "/delete N|ID               delete a chat",
    CommandType.TITLE: "/title TEXT                rename the current chat",
    CommandType.TEMP: "/temp                      toggle the temporary flag of the current chat",
    CommandType.REGEN: "/regen [N]                 regenerate from message N (default: last reply)",
    CommandType.SEARCH: "/search TEXT               search every chat's messages",
    CommandType.STATS: "/stats [N|ID]              size and activity of a chat",
    CommandType.FOLDERS: "/folders                   list folders and their chats",
    CommandType.MKDIR: "/mkdir NAME                create a folder",
    CommandType.RENAME_FOLDER: "/rename-folder F NAME      rename folder F",
    CommandType.RMDIR: "/rmdir F                   delete folder F (chats move to General)",
    CommandType.MOVE: "/mv N|ID [F]               move a chat to folder F (default General)",
    CommandType.MENU: "/menu                      toggle the chat history panel",
    CommandType.HELP: "/help                      show this help",
    CommandType.QUIT: "/quit                      leave the console",
}


def is_console_command(text: str) -> bool:
    """Return ``True`` when ``text`` starts with the command prefix."""

    return (text or "").strip().startswith(_PREFIX)


def parse_console_command(text: str) -> ConsoleCommand | None:
    """Parse ``text`` into a :class:`ConsoleCommand`; plain text yields None.

    Raises:
        ValueError: For unknown verbs, bad quoting or a wrong argument count.
    """

    normalized = (text or "").strip()
    if not normalized.startswith(_PREFIX):
        return None
    remainder = normalized[len(_PREFIX) :].strip()
    if not remainder:
        raise ValueError("Command is missing a verb. Try /help.")
    try:
        tokens = shlex.split(remainder, posix=True)
    except ValueError as exc:
        raise ValueError(f"Unable to parse command: {exc}") from exc

    verb = tokens[0].lower()
    command = _ALIASES.get(verb)
    if command is None:
        raise ValueError(f"Unknown command '/{verb}'. Try /help.")
    args = tuple(tokens[1:])
    minimum, maximum = _ARITY[command]
    if len(args) < minimum:
        raise ValueError(f"/{command.value} needs more arguments: {COMMAND_HELP[command].strip()}")
    if maximum is not None and len(args) > maximum:
        raise ValueError(f"/{command.value} takes at most {maximum} argument(s).")
    return ConsoleCommand(command=command, args=args, raw=normalized)
