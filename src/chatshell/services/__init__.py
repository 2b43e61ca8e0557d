"""Service layer helpers (settings, local store)."""

from .local_store import LocalStore
from .settings import Settings, SettingsStore

__all__ = [
    "LocalStore",
    "Settings",
    "SettingsStore",
]
