import random
from typing import List, Optional

import pytest

from tabletop.broadcaster import EventBroadcaster
from tabletop.config import Settings
from tabletop.constants import Role
from tabletop.lifecycle import SessionLifecycleManager
from tabletop.policy import AdmissionPolicy
from tabletop.registry import ConnectionRegistry
from tabletop.schemas import Identity, JoinIdentity, JoinRoomRequest
from tabletop.store import RoomStore


class MockConnection:
    """Records everything the server sends; stands in for a websocket."""

    def __init__(self) -> None:
        self.sent: List[dict] = []
        self.closed = False
        self.close_code: Optional[int] = None

    async def send_json(self, data) -> None:
        if self.closed:
            raise RuntimeError("connection closed")
        self.sent.append(data)

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = True
        self.close_code = code

    def types(self) -> List[str]:
        return [m["type"] for m in self.sent]

    def of_type(self, event_type: str) -> List[dict]:
        return [m for m in self.sent if m["type"] == event_type]

    def last(self, event_type: str) -> dict:
        matches = self.of_type(event_type)
        assert matches, f"no {event_type!r} in {self.types()}"
        return matches[-1]

    def clear(self) -> None:
        self.sent.clear()


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def ident(connection_id: str, name: str, role: Role = Role.PLAYER) -> Identity:
    return Identity(connection_id=connection_id, display_name=name, role=role)


def join_request(room: str, name: str, role: Role = Role.PLAYER) -> JoinRoomRequest:
    return JoinRoomRequest(room=room, identity=JoinIdentity(display_name=name, role=role))


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def policy(settings) -> AdmissionPolicy:
    return AdmissionPolicy.from_settings(settings)


@pytest.fixture
def store(policy, settings) -> RoomStore:
    return RoomStore(policy, settings, rng=random.Random(7))


@pytest.fixture
def registry() -> ConnectionRegistry:
    return ConnectionRegistry()


@pytest.fixture
def lifecycle(store, registry) -> SessionLifecycleManager:
    return SessionLifecycleManager(store, registry, EventBroadcaster(registry))


@pytest.fixture
def connect(lifecycle):
    """Open a mock connection; returns ``(connection_id, MockConnection)``."""

    def _connect():
        conn = MockConnection()
        return lifecycle.connect(conn), conn

    return _connect
