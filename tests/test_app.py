"""Tests covering the console entry point and its helpers."""

from __future__ import annotations

import io
import json
import os
import sys
from pathlib import Path

import pytest

from chatshell import app
from chatshell.services.local_store import LocalStore
from chatshell.services.settings import Settings, SettingsStore


@pytest.fixture(autouse=True)
def _isolate(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    for name in list(os.environ):
        if name.startswith("CHATSHELL_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("CHATSHELL_HOME", str(tmp_path / "home"))
    monkeypatch.setattr(app, "configure_logging", lambda *args, **kwargs: tmp_path / "chatshell.log")


@pytest.fixture
def console(make_shell):
    async def factory(*, seed: bool = True) -> tuple[app.ChatConsole, io.StringIO]:
        shell = make_shell(seed=seed)
        await shell.start()
        out = io.StringIO()
        return app.ChatConsole(shell, out), out

    return factory


class TestOverrides:
    def test_coerce_cli_overrides(self) -> None:
        overrides = app._coerce_cli_overrides(
            ["latency_scale=0.25", "seed_samples=off", "max_retries=5", "local_store_path=none"]
        )

        assert overrides == {
            "latency_scale": 0.25,
            "seed_samples": False,
            "max_retries": 5,
            "local_store_path": None,
        }

    @pytest.mark.parametrize("entry", ["latency_scale", "=1", "volume=11"])
    def test_invalid_overrides(self, entry: str) -> None:
        with pytest.raises(ValueError):
            app._coerce_cli_overrides([entry])

    def test_parse_bool_rejects_unknown_words(self) -> None:
        assert app._parse_bool("Yes") is True
        assert app._parse_bool("disabled") is False
        with pytest.raises(ValueError):
            app._parse_bool("maybe")


class TestMain:
    def test_dump_settings(self, tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
        settings_path = tmp_path / "custom" / "settings.json"
        SettingsStore(settings_path).save(Settings(assistant_model="from-file"))

        app.main(
            ["--settings-path", str(settings_path), "--set", "latency_scale=0", "--dump-settings"]
        )

        payload = json.loads(capsys.readouterr().out)
        assert payload["settings"]["assistant_model"] == "from-file"
        assert payload["settings"]["latency_scale"] == 0.0
        assert payload["meta"]["path"] == str(settings_path)
        assert payload["meta"]["local_store_path"] == str(tmp_path / "custom" / "local_store.json")
        assert payload["meta"]["cli_overrides"] == ["latency_scale"]
        assert "CHATSHELL_HOME" in payload["meta"]["environment_variables"]

    def test_console_opens_the_dumped_local_store(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        settings_path = tmp_path / "custom" / "settings.json"
        flags = ["--settings-path", str(settings_path), "--set", "latency_scale=0"]
        app.main([*flags, "--set", "seed_samples=off", "--dump-settings"])
        reported = Path(json.loads(capsys.readouterr().out)["meta"]["local_store_path"])
        monkeypatch.setattr(sys, "stdin", io.StringIO("/quit\n"))

        app.main([*flags, "--set", "seed_samples=off"])

        assert reported == tmp_path / "custom" / "local_store.json"
        assert reported.exists()
        assert not (tmp_path / "home" / "local_store.json").exists()

    def test_invalid_override_exits(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as excinfo:
            app.main(["--set", "nonsense"])

        assert excinfo.value.code == 2
        assert "Invalid --set override" in capsys.readouterr().err

    def test_load_settings_defaults_on_os_error(self, tmp_path: Path) -> None:
        class BrokenStore(SettingsStore):
            def load(self, *, overrides=None):  # type: ignore[override]
                raise PermissionError("denied")

        settings = app.load_settings(store=BrokenStore(tmp_path / "settings.json"))

        assert settings == Settings()


class TestConsole:
    @pytest.mark.asyncio
    async def test_list_and_select(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/list")
        await chat_console.handle_line("/select 2")

        text = out.getvalue()
        assert "*  1. React Components Design  [General]" in text
        assert "   4. Empty Chat  [General]" in text
        assert "== API Integration Help ==" in text
        assert "  1. user: What are the best practices for API design?" in text

    @pytest.mark.asyncio
    async def test_plain_text_is_sent_to_current_chat(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("How do I normalize a database schema?")

        assert "assistant: Database design is crucial" in out.getvalue()
        assert len(chat_console._shell.conversation.messages) == 4

    @pytest.mark.asyncio
    async def test_new_chat_is_listed_after_first_message(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/new")
        await chat_console.handle_line("Explain promises")
        await chat_console.handle_line("/title Promise notes")
        await chat_console.handle_line("/list")

        text = out.getvalue()
        assert "Started 'New Chat'" in text
        assert "Title set to 'Promise notes'." in text
        assert "*  1. Promise notes  [General]" in text

    @pytest.mark.asyncio
    async def test_folder_commands(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/mkdir Work")
        await chat_console.handle_line("/mv 1 work")
        await chat_console.handle_line("/folders")
        await chat_console.handle_line("/rename-folder 2 Side projects")
        await chat_console.handle_line("/rmdir general")
        await chat_console.handle_line("/rmdir 2")

        text = out.getvalue()
        assert "Moved to Work." in text
        assert "  2. Work (1)" in text
        assert "       - React Components Design" in text
        assert "Renamed folder to 'Side projects'." in text
        assert "! Cannot delete the General folder" in text
        assert "Deleted folder; 1 chat(s) moved to General." in text

    @pytest.mark.asyncio
    async def test_errors_are_reported(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/launch")
        await chat_console.handle_line("/select 99")
        await chat_console.handle_line("/mv 1 Nowhere")

        text = out.getvalue()
        assert "! Unknown command '/launch'" in text
        assert "! Unknown chat '99'" in text
        assert "! Unknown folder 'Nowhere'" in text

    @pytest.mark.asyncio
    async def test_search_stats_and_regen(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/search reusable button")
        await chat_console.handle_line("/stats")
        await chat_console.handle_line("/regen")

        text = out.getvalue()
        assert "React Components Design: 1 message(s)" in text
        assert "2 message(s)" in text
        assert "assistant: Great question about React!" in text

    @pytest.mark.asyncio
    async def test_temp_and_menu_toggles(self, console) -> None:
        chat_console, out = await console()

        await chat_console.handle_line("/temp")
        await chat_console.handle_line("/menu")
        await chat_console.handle_line("/list")

        text = out.getvalue()
        assert "Marked temporary." in text
        assert "Chat history panel closed." in text
        assert "React Components Design" not in text.split("Chat history panel closed.")[1]

    @pytest.mark.asyncio
    async def test_quit_stops_processing(self, console) -> None:
        chat_console, out = await console()

        await chat_console.run(["/quit", "/help"])

        assert out.getvalue() == ""

    @pytest.mark.asyncio
    async def test_help_lists_commands(self, console) -> None:
        chat_console, out = await console(seed=False)

        await chat_console.handle_line("/help")
        await chat_console.handle_line("/list")

        text = out.getvalue()
        assert "/rename-folder F NAME" in text
        assert "No chats yet." in text


def test_state_persists_between_shells(make_shell, tmp_path: Path) -> None:
    store_path = tmp_path / "local_store.json"
    first = make_shell(local_store=LocalStore(store_path))
    first.view_state.set_title("t1", "Kept")

    second = make_shell(local_store=LocalStore(store_path))

    assert second.view_state.title_for("t1") == "Kept"
