"""Console entry point for the chat shell."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict
from pathlib import Path
from typing import (
    Any,
    Dict,
    Iterable,
    Mapping,
    Optional,
    Sequence,
    TextIO,
    get_args,
    get_origin,
    get_type_hints,
)

from .chat.commands import COMMAND_HELP, CommandType, ConsoleCommand, parse_console_command
from .chat.models import Message, Thread
from .services.settings import Settings, SettingsStore
from .ui.bootstrap import ChatShell, create_chat_shell
from .ui.domain import FolderDropTarget, FolderError
from .ui.events import HistoryChatSelected, SecondLayerMenuToggled
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_LOGGER = logging.getLogger(__name__)
_PROMPT = "> "


def configure_logging(debug: bool = False, *, force: bool = False) -> Path:
    """Configure file logging (and stderr output in debug mode)."""

    level = logging_utils.level_for(debug)
    log_path = logging_utils.setup_logging(level, console=debug, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return log_path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


class ChatConsole:
    """Line-oriented front end driving a :class:`ChatShell`.

    Slash commands are parsed by :mod:`chatshell.chat.commands`; any other
    line is sent as a message to the current chat.
    """

    def __init__(self, shell: ChatShell, out: TextIO) -> None:
        self._shell = shell
        self._out = out

    def write(self, text: str = "") -> None:
        self._out.write(text + "\n")

    async def handle_line(self, line: str) -> bool:
        """Process one input line; returns False when the console should exit."""

        text = line.strip()
        if not text:
            return True
        try:
            command = parse_console_command(text)
        except ValueError as exc:
            self.write(f"! {exc}")
            return True
        try:
            if command is None:
                await self._send(text)
                return True
            return await self._dispatch(command)
        except FolderError as exc:
            self.write(f"! {exc}")
            return True
        finally:
            await self._shell.settle()

    async def run(self, lines: Iterable[str]) -> None:
        for line in lines:
            if not await self.handle_line(line):
                break

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def _dispatch(self, command: ConsoleCommand) -> bool:
        shell = self._shell
        kind = command.command
        if kind is CommandType.QUIT:
            return False
        if kind is CommandType.HELP:
            for entry in COMMAND_HELP.values():
                self.write(entry)
        elif kind is CommandType.LIST:
            self._print_threads()
        elif kind is CommandType.NEW:
            thread = await shell.conversation.start_new_chat()
            if thread is None:
                self.write("Current chat is still empty.")
            else:
                self.write(f"Started {thread.title!r}; it is listed after the first message.")
        elif kind is CommandType.SELECT:
            chat_id = self._resolve_chat(command.args[0])
            if chat_id is not None:
                shell.event_bus.publish(HistoryChatSelected(scope_key=shell.scope_key, chat_id=chat_id))
                await shell.settle()
                self._print_conversation()
        elif kind is CommandType.DELETE:
            chat_id = self._resolve_chat(command.args[0])
            if chat_id is not None:
                deleted = await shell.thread_list.delete_thread(chat_id)
                self.write("Deleted." if deleted else "Chat could not be deleted.")
        elif kind is CommandType.TITLE:
            await self._rename_current(command.text)
        elif kind is CommandType.TEMP:
            value = shell.conversation.toggle_temporary()
            if value is None:
                self.write("No chat selected.")
            else:
                self.write("Marked temporary." if value else "Marked permanent.")
        elif kind is CommandType.REGEN:
            await self._regenerate(command.args[0] if command.args else None)
        elif kind is CommandType.SEARCH:
            await self._search(command.text)
        elif kind is CommandType.STATS:
            await self._stats(command.args[0] if command.args else None)
        elif kind is CommandType.FOLDERS:
            self._print_folders()
        elif kind is CommandType.MKDIR:
            folder = shell.folders.create(command.text)
            self.write(f"Created folder {folder.name!r} ({folder.id}).")
        elif kind is CommandType.RENAME_FOLDER:
            folder_id = self._resolve_folder(command.args[0])
            if folder_id is not None:
                folder = shell.folders.rename(folder_id, " ".join(command.args[1:]))
                self.write(f"Renamed folder to {folder.name!r}.")
        elif kind is CommandType.RMDIR:
            folder_id = self._resolve_folder(command.args[0])
            if folder_id is not None:
                moved = shell.folders.delete(folder_id)
                self.write(f"Deleted folder; {len(moved)} chat(s) moved to General.")
        elif kind is CommandType.MOVE:
            await self._move(command.args)
        elif kind is CommandType.MENU:
            shell.event_bus.publish(
                SecondLayerMenuToggled(scope_key=shell.scope_key, tab_id=shell.menu.tab_id)
            )
            self.write("Chat history panel " + ("opened." if shell.menu.is_open else "closed."))
        return True

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def _send(self, text: str) -> None:
        result = await self._shell.conversation.send_message(text)
        if result is None:
            self.write("! Message was not sent.")
            return
        _, reply = result
        if reply is None:
            self.write("! The assistant did not answer; try /regen.")
            return
        self.write(f"assistant: {reply.content}")

    async def _rename_current(self, title: str) -> None:
        editor = self._shell.title_editor
        if editor.begin(self._shell.conversation.chat_id) is None:
            self.write("No chat selected.")
            return
        editor.type(title)
        if await editor.commit():
            self.write(f"Title set to {editor.title!r}.")
        else:
            self.write(f"Title unchanged ({editor.title!r}).")

    async def _regenerate(self, reference: str | None) -> None:
        messages = self._shell.conversation.messages
        target: Message | None = None
        if reference is None:
            target = next((m for m in reversed(messages) if m.role == "assistant"), None)
        elif reference.isdigit() and 1 <= int(reference) <= len(messages):
            target = messages[int(reference) - 1]
        if target is None:
            self.write("! No message to regenerate from.")
            return
        reply = await self._shell.conversation.regenerate_from(target.id)
        if reply is None:
            self.write("! Nothing was regenerated.")
        else:
            self.write(f"assistant: {reply.content}")

    async def _search(self, query: str) -> None:
        shell = self._shell
        hits = await shell.gateway.call(
            "search_messages", shell.thread_store.search_messages, query, fallback=[]
        )
        if not hits:
            self.write("No matches.")
            return
        for hit in hits:
            title = shell.thread_list.display_title(hit.thread_id) or hit.thread_id
            self.write(f"{title}: {len(hit.messages)} message(s)")
            for message in hit.messages:
                self.write(f"  {message.role}: {_preview(message.content)}")

    async def _stats(self, reference: str | None) -> None:
        shell = self._shell
        chat_id = self._resolve_chat(reference) if reference else shell.conversation.chat_id
        if chat_id is None:
            self.write("No chat selected.")
            return
        stats = await shell.gateway.call("get_thread_stats", shell.thread_store.get_thread_stats, chat_id)
        if stats is None:
            self.write("! No statistics for that chat.")
            return
        self.write(
            f"{stats.message_count} message(s), {stats.total_chars} chars, "
            f"~{stats.total_tokens} tokens, last activity {stats.last_activity:%Y-%m-%d %H:%M}"
        )

    async def _move(self, args: Sequence[str]) -> None:
        shell = self._shell
        chat_id = self._resolve_chat(args[0])
        if chat_id is None:
            return
        folder_id = self._resolve_folder(args[1]) if len(args) > 1 else None
        if len(args) > 1 and folder_id is None:
            return
        if shell.folders.handle_drag_end(chat_id, FolderDropTarget(folder_id)):
            folder = shell.folders.get(shell.folders.folder_of(chat_id) or "")
            self.write(f"Moved to {folder.name if folder else 'General'}.")

    # ------------------------------------------------------------------
    # Rendering and lookups
    # ------------------------------------------------------------------

    def _print_threads(self) -> None:
        shell = self._shell
        threads = shell.thread_list.visible_threads()
        if not threads:
            self.write("No chats yet. Type a message to start one.")
            return
        folders = {folder.id: folder.name for folder in shell.folders.folders}
        for index, thread in enumerate(threads, start=1):
            marker = "*" if thread.id == shell.conversation.chat_id else " "
            folder = folders.get(shell.folders.folder_of(thread.id) or "", "-")
            self.write(f"{marker}{index:>3}. {shell.view_state.display_title(thread)}  [{folder}]")

    def _print_folders(self) -> None:
        shell = self._shell
        threads = shell.thread_list.threads
        for index, folder in enumerate(shell.folders.folders, start=1):
            members = shell.folders.threads_in_folder(folder.id, threads)
            self.write(f"{index:>3}. {folder.name} ({len(members)})")
            for thread in members:
                self.write(f"       - {shell.view_state.display_title(thread)}")

    def _print_conversation(self) -> None:
        shell = self._shell
        chat_id = shell.conversation.chat_id
        if chat_id is None:
            return
        self.write(f"== {shell.title_editor.live_title or shell.thread_list.display_title(chat_id)} ==")
        for index, message in enumerate(shell.conversation.messages, start=1):
            self.write(f"{index:>3}. {message.role}: {_preview(message.content)}")

    def _resolve_chat(self, reference: str | None) -> str | None:
        threads: list[Thread] = self._shell.thread_list.visible_threads()
        if reference:
            if reference.isdigit():
                index = int(reference)
                if 1 <= index <= len(threads):
                    return threads[index - 1].id
            else:
                matches = [thread.id for thread in threads if thread.id.startswith(reference)]
                if len(matches) == 1:
                    return matches[0]
        self.write(f"! Unknown chat {reference!r}; see /list.")
        return None

    def _resolve_folder(self, reference: str) -> str | None:
        folders = self._shell.folders.folders
        if reference.isdigit() and 1 <= int(reference) <= len(folders):
            return folders[int(reference) - 1].id
        lowered = reference.lower()
        for folder in folders:
            if folder.id == reference or folder.name.lower() == lowered:
                return folder.id
        self.write(f"! Unknown folder {reference!r}; see /folders.")
        return None


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point invoked by the `chatshell` console script."""

    args = _parse_cli_args(argv)
    debug = args.debug or _env_flag("CHATSHELL_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("CHATSHELL_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        raise SystemExit(2) from exc

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    try:
        asyncio.run(
            _run_interactive(
                settings, sys.stdin, sys.stdout, store_dir=_store_dir(settings_store)
            )
        )
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")


async def _run_interactive(
    settings: Settings,
    stdin: TextIO,
    stdout: TextIO,
    *,
    store_dir: Optional[Path] = None,
) -> None:
    shell = create_chat_shell(settings, store_dir=store_dir)
    console = ChatConsole(shell, stdout)
    await shell.start()
    console.write("chatshell - type a message, or /help for commands.")
    loop = asyncio.get_running_loop()
    try:
        while True:
            stdout.write(_PROMPT)
            stdout.flush()
            line = await loop.run_in_executor(None, stdin.readline)
            if not line:
                break
            if not await console.handle_line(line):
                break
    finally:
        await shell.close()


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chatshell",
        description="Run the chat shell console or inspect its configuration.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.chatshell/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings before launch (repeatable).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level and mirror log lines to stderr.",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = type_hints.get(key, fields[key].type)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if normalized.lower() in {"none", "null"} and _is_optional(annotation):
        return None
    if target is str:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    if get_origin(annotation) is None:
        return annotation
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    return args[0] if args else annotation


def _is_optional(annotation: Any) -> bool:
    return type(None) in get_args(annotation)


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    metadata = {
        "path": str(store.path),
        "local_store_path": str(settings.resolve_store_path(_store_dir(store))),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": asdict(settings), "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _store_dir(store: SettingsStore) -> Path:
    """The local store defaults to living beside the settings file."""
    return store.path.parent


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("CHATSHELL_"))


def _preview(text: str, limit: int = 80) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
