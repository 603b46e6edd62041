"""Centralised in-memory runtime state.

This keeps the singletons that are shared across the whole application so
routers can simply import them without worrying about circular imports.
Nothing here survives a restart.
"""
from __future__ import annotations

from .auth_utils import CredentialTable
from .broadcaster import EventBroadcaster
from .config import get_settings
from .lifecycle import SessionLifecycleManager
from .policy import AdmissionPolicy
from .registry import ConnectionRegistry
from .store import RoomStore

settings = get_settings()

registry = ConnectionRegistry()
store = RoomStore(AdmissionPolicy.from_settings(settings), settings)
broadcaster = EventBroadcaster(registry)
lifecycle = SessionLifecycleManager(store, registry, broadcaster)
credentials = CredentialTable(settings)

__all__ = ["settings", "registry", "store", "broadcaster", "lifecycle", "credentials"]
