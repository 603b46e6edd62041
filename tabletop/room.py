from __future__ import annotations

import asyncio
from typing import Dict, List, Optional, Tuple

from .constants import DEFAULT_ASSETS, GamePhase, Role
from .schemas import Asset, Identity, RoomSnapshot, Token

# NOTE: ``Room`` only holds data and local bookkeeping helpers. Writes are
# driven by ``RoomStore`` so a transaction is always read, decide, mutate with
# no await in between.


class Room:
    """Runtime state of one named lobby and its battlefield."""

    def __init__(self, name: str, columns: int = 40, rows: int = 25):
        self.name = name
        self.columns = columns
        self.rows = rows
        self.creator: Optional[Identity] = None
        self.host: Optional[Identity] = None
        # connection_id -> identity, in join order
        self.players: Dict[str, Identity] = {}
        # battlefield member connection_id -> token position; membership and
        # token live in one mapping so they can never drift apart
        self.battlefield: Dict[str, Tuple[int, int]] = {}
        self.phase = GamePhase.LOBBY
        self.assets: Dict[int, Asset] = {
            asset_id: Asset(asset_id=asset_id, name=label) for asset_id, label in DEFAULT_ASSETS
        }
        self.background: Optional[str] = None
        self.version = 0
        # serialises every transaction (mutation + broadcast) on this room
        self.lock = asyncio.Lock()

    # -------------------- Membership -------------------- #

    def members(self) -> List[Identity]:
        seen = set()
        result: List[Identity] = []
        for identity in [self.creator, self.host, *self.players.values()]:
            if identity is None or identity.connection_id in seen:
                continue
            seen.add(identity.connection_id)
            result.append(identity)
        return result

    def member(self, connection_id: str) -> Optional[Identity]:
        for identity in self.members():
            if identity.connection_id == connection_id:
                return identity
        return None

    def find_by_name(self, display_name: str) -> Optional[Identity]:
        for identity in self.members():
            if identity.same_name(display_name):
                return identity
        return None

    def seat(self, identity: Identity, creator_is_host: bool = False) -> None:
        if identity.role is Role.CREATOR:
            self.creator = identity
            if creator_is_host:
                self.host = identity
        elif identity.role is Role.HOST:
            self.host = identity
        else:
            self.players[identity.connection_id] = identity

    def remove_connection(self, connection_id: str, cascade_host: bool = False) -> List[str]:
        """Drop *connection_id* from every seat and the battlefield.

        Returns the connection ids that left the room; with *cascade_host* a
        departing creator takes a separate host along. Unknown ids are a no-op.
        """
        removed: List[str] = []

        def _note(cid: str) -> None:
            if cid not in removed:
                removed.append(cid)

        if self.players.pop(connection_id, None) is not None:
            _note(connection_id)
        if self.host is not None and self.host.connection_id == connection_id:
            self.host = None
            _note(connection_id)
        if self.creator is not None and self.creator.connection_id == connection_id:
            self.creator = None
            _note(connection_id)
            if cascade_host and self.host is not None:
                _note(self.host.connection_id)
                self.host = None

        for cid in removed:
            self.battlefield.pop(cid, None)
        return removed

    # -------------------- Battlefield -------------------- #

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.columns and 0 <= y < self.rows

    def occupant(self, x: int, y: int) -> Optional[str]:
        for cid, position in self.battlefield.items():
            if position == (x, y):
                return cid
        return None

    def free_cell(self) -> Optional[Tuple[int, int]]:
        """First unoccupied cell scanning row by row from the top-left."""
        taken = set(self.battlefield.values())
        for y in range(self.rows):
            for x in range(self.columns):
                if (x, y) not in taken:
                    return (x, y)
        return None

    def reset_round(self) -> None:
        """Empty the battlefield and take every asset back off the grid."""
        self.battlefield.clear()
        for asset in self.assets.values():
            asset.x = None
            asset.y = None
            asset.discovered = False

    def touch(self) -> None:
        self.version += 1

    # -------------------- Snapshots -------------------- #

    def snapshot(self) -> RoomSnapshot:
        """Detached copy of the whole room, safe to hand to other components."""
        tokens: List[Token] = []
        for cid, (x, y) in self.battlefield.items():
            identity = self.member(cid)
            tokens.append(
                Token(
                    connection_id=cid,
                    display_name=identity.display_name if identity else "",
                    x=x,
                    y=y,
                )
            )
        return RoomSnapshot(
            room=self.name,
            version=self.version,
            phase=self.phase,
            creator=self.creator,
            host=self.host,
            players=list(self.players.values()),
            battlefield_members=list(self.battlefield.keys()),
            tokens=tokens,
            assets=[asset.model_copy() for asset in self.assets.values()],
            background=self.background,
        )


__all__ = ["Room"]
