"""Settings dataclass and JSON persistence for the chat shell."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping

__all__ = ["Settings", "SettingsStore", "default_settings_dir"]

LOGGER = logging.getLogger(__name__)
_SETTINGS_VERSION = 1
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}


def _env_bool(raw: str) -> bool:
    return raw.strip().lower() in _TRUE_VALUES


def _env_int(raw: str) -> int:
    return int(raw, 10)


_PARSER_NAMES: Mapping[Callable[[str], Any], str] = {_env_int: "integer", float: "float"}

# Environment variable -> (settings field, parser). Parsers raise ValueError.
_ENV_OVERRIDES: Mapping[str, tuple[str, Callable[[str], Any]]] = {
    "CHATSHELL_SCOPE_KEY": ("scope_key", str),
    "CHATSHELL_STORE_PATH": ("local_store_path", str),
    "CHATSHELL_ASSISTANT_MODEL": ("assistant_model", str),
    "CHATSHELL_DEBUG_LOGGING": ("debug_logging", _env_bool),
    "CHATSHELL_SEED_SAMPLES": ("seed_samples", _env_bool),
    "CHATSHELL_LATENCY_SCALE": ("latency_scale", float),
    "CHATSHELL_LATENCY_JITTER": ("latency_jitter", float),
    "CHATSHELL_FAULT_RATE": ("fault_rate", float),
    "CHATSHELL_RETRY_MIN_SECONDS": ("retry_min_seconds", float),
    "CHATSHELL_RETRY_MAX_SECONDS": ("retry_max_seconds", float),
    "CHATSHELL_MAX_RETRIES": ("max_retries", _env_int),
}


def default_settings_dir() -> Path:
    """Directory holding ``settings.json`` and, by default, the local store."""

    return Path(os.environ.get("CHATSHELL_HOME") or Path.home() / ".chatshell").expanduser()


@dataclass(slots=True)
class Settings:
    """Knobs for the shell: scope, simulated backend latency and faults, retries."""

    scope_key: str = "chat"
    local_store_path: str | None = None  # None = <settings dir>/local_store.json
    latency_scale: float = 1.0
    latency_jitter: float = 0.2
    fault_rate: float = 0.0
    seed_samples: bool = True
    assistant_model: str = "gpt-4-turbo"
    max_retries: int = 3
    retry_min_seconds: float = 0.1
    retry_max_seconds: float = 2.0
    debug_logging: bool = False

    def resolve_store_path(self, base_dir: Path | None = None) -> Path:
        if self.local_store_path:
            return Path(self.local_store_path).expanduser()
        return (base_dir or default_settings_dir()) / "local_store.json"


class SettingsStore:
    """Reads and writes :class:`Settings` as JSON under the settings directory."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = path or default_settings_dir() / "settings.json"

    @property
    def path(self) -> Path:
        return self._path

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        """Load settings from disk, then apply CLI and environment overrides.

        Environment variables win over CLI overrides, which win over the file.
        """

        payload = self._read_payload()
        settings = Settings()
        if payload:
            data = _filter_fields(payload)
            try:
                settings = _coerce(Settings(**data))
            except (TypeError, ValueError) as exc:
                LOGGER.warning("Settings payload contained unexpected data: %s", exc)
                settings = Settings()
            LOGGER.debug("Settings loaded from %s", self._path)

        if overrides:
            settings = self._apply_overrides(settings, overrides, source="CLI")

        return self._apply_env_overrides(settings)

    def save(self, settings: Settings) -> Path:
        """Write ``settings`` next to a temp file, then swap it into place."""

        data = asdict(settings)
        data["version"] = _SETTINGS_VERSION
        body = json.dumps(data, indent=2, sort_keys=True)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(".tmp")
        tmp_path.write_text(body, encoding="utf-8")
        tmp_path.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as exc:
            LOGGER.warning("Settings file %s is not valid JSON: %s", self._path, exc)
            return {}
        return payload if isinstance(payload, dict) else {}

    def _apply_overrides(
        self,
        settings: Settings,
        overrides: Mapping[str, Any],
        *,
        source: str = "runtime",
    ) -> Settings:
        allowed = {item.name for item in fields(Settings)}
        filtered: Dict[str, Any] = {}
        for key, value in overrides.items():
            if key not in allowed or value is None:
                if key not in allowed:
                    LOGGER.warning("Ignoring unknown %s setting %r", source, key)
                continue
            filtered[key] = value
        if not filtered:
            return settings
        LOGGER.debug("Applying %s settings overrides: %s", source, sorted(filtered))
        try:
            return _coerce(replace(settings, **filtered))
        except ValueError as exc:
            LOGGER.warning("Rejected %s settings overrides: %s", source, exc)
            return settings

    def _apply_env_overrides(self, settings: Settings) -> Settings:
        overrides: Dict[str, Any] = {}
        for env_name, (field_name, parse) in _ENV_OVERRIDES.items():
            raw = os.environ.get(env_name)
            if raw is None:
                continue
            try:
                overrides[field_name] = parse(raw)
            except ValueError:
                LOGGER.warning(
                    "Environment override %s=%s is not a valid %s",
                    env_name,
                    raw,
                    _PARSER_NAMES.get(parse, "value"),
                )
        if overrides:
            settings = self._apply_overrides(settings, overrides, source="environment")
        return settings


def _filter_fields(payload: Mapping[str, Any]) -> Dict[str, Any]:
    allowed = {item.name for item in fields(Settings)}
    return {key: value for key, value in payload.items() if key in allowed}


def _coerce(settings: Settings) -> Settings:
    """Normalise string values coming from the CLI or a hand-edited file.

    Raises:
        ValueError: If a numeric field cannot be parsed.
    """

    def as_bool(value: Any) -> bool:
        if isinstance(value, str):
            return value.strip().lower() in _TRUE_VALUES
        return bool(value)

    return replace(
        settings,
        scope_key=str(settings.scope_key).strip() or "chat",
        latency_scale=max(0.0, float(settings.latency_scale)),
        latency_jitter=min(1.0, max(0.0, float(settings.latency_jitter))),
        fault_rate=min(1.0, max(0.0, float(settings.fault_rate))),
        max_retries=max(1, int(settings.max_retries)),
        retry_min_seconds=max(0.0, float(settings.retry_min_seconds)),
        retry_max_seconds=max(0.0, float(settings.retry_max_seconds)),
        seed_samples=as_bool(settings.seed_samples),
        debug_logging=as_bool(settings.debug_logging),
    )
