from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Set

from .errors import StateError
from .schemas import Identity


@dataclass(frozen=True)
class Binding:
    connection_id: str
    room: str
    identity: Identity


class ConnectionRegistry:
    """Which live connection is joined to which room, under which identity.

    A connection is bound to at most one room at a time. The registry never
    broadcasts; it is the lookup table every other component consults to answer
    "who is currently connected where".
    """

    def __init__(self) -> None:
        self._bindings: Dict[str, Binding] = {}

    def bind(self, connection_id: str, room: str, identity: Identity) -> Binding:
        existing = self._bindings.get(connection_id)
        if existing is not None and existing.room != room:
            raise StateError(
                f"Connection is already in room {existing.room!r}; leave it first",
                kind="AlreadyBound",
            )
        binding = Binding(connection_id=connection_id, room=room, identity=identity)
        self._bindings[connection_id] = binding
        return binding

    def unbind(self, connection_id: str) -> Optional[Binding]:
        return self._bindings.pop(connection_id, None)

    def lookup(self, connection_id: str) -> Optional[Binding]:
        return self._bindings.get(connection_id)

    def connections_in(self, room: str) -> List[str]:
        return [cid for cid, binding in self._bindings.items() if binding.room == room]

    def rooms(self) -> Set[str]:
        return {binding.room for binding in self._bindings.values()}

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._bindings

    def __len__(self) -> int:
        return len(self._bindings)


__all__ = ["Binding", "ConnectionRegistry"]
