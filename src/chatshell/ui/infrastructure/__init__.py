"""
Infrastructure Layer - Adapters between the chat domain and its backend.

- Backend access with retries and fallbacks (BackendGateway)
"""

from __future__ import annotations

from chatshell.ui.infrastructure.backend_gateway import BackendGateway

__all__: list[str] = [
    "BackendGateway",
]
