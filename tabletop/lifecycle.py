"""Session lifecycle: turns connection events and client requests into room
transactions.

Every public coroutine here follows the same shape: resolve the caller's
binding, take the room lock, call exactly one ``RoomStore`` method, then issue
the broadcasts and transport side effects (evictions, forced closes) before
releasing the lock. Because the lock is held across the broadcast, every
client of a room sees that room's events in commit order.
"""
from __future__ import annotations

import logging
import secrets
from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from .broadcaster import EventBroadcaster, Transport, event
from .constants import CLOSE_REMOVED, CLOSE_REPLACED, CLOSE_ROOM_CLEARED, RoleAction
from .errors import NotFoundError, StateError
from .registry import Binding, ConnectionRegistry
from .room import Room
from .schemas import (
    BattlefieldRequest,
    DiceRoll,
    DiscoverAssetRequest,
    Identity,
    JoinRoomRequest,
    MoveTokenRequest,
    RoleActionRequest,
    RollDiceRequest,
    RoomSnapshot,
)
from .store import ActionOutcome, LeaveOutcome, RoomStore

logger = logging.getLogger(__name__)


def new_connection_id() -> str:
    return "C_" + secrets.token_hex(6)


def _who(identity: Identity) -> dict:
    return {"connectionId": identity.connection_id, "displayName": identity.display_name}


def _host_status(snapshot: RoomSnapshot) -> dict:
    # data is a bare bool: is a host seated right now
    return event("hostStatus", snapshot.host_present)


class SessionLifecycleManager:
    def __init__(self, store: RoomStore, registry: ConnectionRegistry, broadcaster: EventBroadcaster):
        self.store = store
        self.registry = registry
        self.broadcaster = broadcaster

    # ---------------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------------

    @asynccontextmanager
    async def _transaction(self, room_name: str, create: bool = False) -> AsyncIterator[Room]:
        """Hold the lock of *room_name* for the duration of the block.

        If the room is cleared and recreated while we wait for its lock, the
        lock of the new record is taken instead.
        """
        while True:
            room = self.store.get_or_create(room_name) if create else self.store.get(room_name)
            if room is None:
                raise NotFoundError(f"Room {room_name!r} does not exist", kind="NotInRoom")
            async with room.lock:
                if self.store.get(room.name) is room:
                    yield room
                    return

    def _binding_for(self, connection_id: str, room: Optional[str] = None) -> Binding:
        binding = self.registry.lookup(connection_id)
        if binding is None:
            raise NotFoundError("Join a room first", kind="NotInRoom")
        if room and room.strip() != binding.room:
            raise NotFoundError(f"You are not in room {room!r}", kind="NotInRoom")
        return binding

    async def _evict(self, connection_id: str, notice: dict, code: int, reason: str) -> None:
        self.registry.unbind(connection_id)
        await self.broadcaster.broadcast_to_connection(connection_id, notice)
        await self.broadcaster.close(connection_id, code, reason)

    async def _announce_battlefield(self, snapshot: RoomSnapshot) -> None:
        await self.broadcaster.broadcast_ephemeral(
            snapshot.room,
            event("battlefieldPlayers", [token.wire() for token in snapshot.tokens]),
        )

    async def _after_departure(self, room_name: str, outcome, initiator: Optional[str],
                               notice_type: str, code: int) -> None:
        """Broadcast a departure and evict anyone removed besides *initiator*."""
        for identity in outcome.removed:
            if identity.connection_id == initiator:
                continue
            await self._evict(
                identity.connection_id,
                event(notice_type, {"room": room_name, "displayName": identity.display_name}),
                code,
                "Removed from room",
            )
        if outcome.snapshot is None:
            return
        await self.broadcaster.broadcast_room_update(room_name, outcome.snapshot)
        for identity in outcome.left_battlefield:
            await self.broadcaster.broadcast_ephemeral(room_name, event("playerLeftBattlefield", _who(identity)))
        if outcome.left_battlefield:
            await self._announce_battlefield(outcome.snapshot)
        if outcome.host_changed:
            await self.broadcaster.broadcast_ephemeral(room_name, _host_status(outcome.snapshot))

    # ---------------------------------------------------------------------
    # Connection lifecycle
    # ---------------------------------------------------------------------

    def connect(self, transport: Transport) -> str:
        connection_id = new_connection_id()
        self.broadcaster.register(connection_id, transport)
        logger.info("Connection %s opened", connection_id)
        return connection_id

    async def _release(self, connection_id: str) -> Optional[LeaveOutcome]:
        binding = self.registry.lookup(connection_id)
        if binding is None:
            return None
        try:
            async with self._transaction(binding.room) as room:
                # a duplicate signal that waited on the lock finds nothing left to do
                if self.registry.unbind(connection_id) is None:
                    return None
                outcome = self.store.apply_leave(room.name, connection_id)
                if outcome.changed:
                    await self._after_departure(
                        room.name, outcome, connection_id, "forceLeave", CLOSE_REMOVED
                    )
                return outcome
        except NotFoundError:
            # the room was cleared while we waited; clearing already unbound everyone
            self.registry.unbind(connection_id)
            return None

    async def disconnect(self, connection_id: str) -> bool:
        """Transport-level disconnect. Safe to call any number of times."""
        try:
            outcome = await self._release(connection_id)
        finally:
            self.broadcaster.forget(connection_id)
        logger.info("Connection %s closed", connection_id)
        return outcome is not None and outcome.changed

    async def leave(self, connection_id: str) -> bool:
        """Explicit leave; the transport stays open for another join."""
        outcome = await self._release(connection_id)
        return outcome is not None and outcome.changed

    # ---------------------------------------------------------------------
    # Room transactions
    # ---------------------------------------------------------------------

    async def join(self, connection_id: str, request: JoinRoomRequest) -> RoomSnapshot:
        identity = Identity(
            connection_id=connection_id,
            display_name=request.identity.display_name,
            role=request.identity.role,
        )
        bound = self.registry.lookup(connection_id)
        if bound is not None and bound.room != request.room:
            raise StateError(
                f"Connection is already in room {bound.room!r}; leave it first", kind="AlreadyBound"
            )

        async with self._transaction(request.room, create=True) as room:
            outcome = self.store.apply_join(room.name, identity)
            for stale in outcome.evicted:
                self.registry.unbind(stale)
            self.registry.bind(connection_id, room.name, identity)

            for stale in outcome.evicted:
                logger.info("Connection %s replaced by %s in room %r", stale, connection_id, room.name)
                await self._evict(
                    stale,
                    event("forceLeave", {"room": room.name, "reason": "replaced"}),
                    CLOSE_REPLACED,
                    "Logged in elsewhere",
                )
            if outcome.changed:
                await self.broadcaster.broadcast_room_update(room.name, outcome.snapshot)
            else:
                await self.broadcaster.broadcast_to_connection(
                    connection_id, event("roomUpdate", outcome.snapshot.wire())
                )
            if outcome.host_changed:
                await self.broadcaster.broadcast_ephemeral(room.name, _host_status(outcome.snapshot))
            else:
                await self.broadcaster.broadcast_to_connection(connection_id, _host_status(outcome.snapshot))
        return outcome.snapshot

    async def role_action(self, connection_id: str, request: RoleActionRequest) -> ActionOutcome:
        binding = self._binding_for(connection_id, request.room)
        async with self._transaction(binding.room) as room:
            outcome = self.store.apply_role_action(room.name, connection_id, request)
            if not outcome.changed:
                await self.broadcaster.broadcast_to_connection(
                    connection_id, event("roomUpdate", outcome.snapshot.wire())
                )
                return outcome

            if outcome.action is RoleAction.CLEAR_ROOM:
                targets: List[str] = [identity.connection_id for identity in outcome.removed]
                targets += [cid for cid in self.registry.connections_in(room.name) if cid not in targets]
                for cid in targets:
                    self.registry.unbind(cid)
                notice = event("forceLeave", {"room": room.name, "reason": "roomCleared"})
                for cid in targets:
                    await self._evict(cid, notice, CLOSE_ROOM_CLEARED, "Room cleared")
                return outcome

            if outcome.action is RoleAction.REMOVE_PLAYER:
                await self._after_departure(room.name, outcome, None, "removedFromLobby", CLOSE_REMOVED)
                return outcome

            await self.broadcaster.broadcast_room_update(room.name, outcome.snapshot)
            if outcome.action is RoleAction.OPEN_BATTLEFIELD:
                await self.broadcaster.broadcast_ephemeral(room.name, event("battlefieldOpened", {"room": room.name}))
            elif outcome.action is RoleAction.START_GAME:
                await self.broadcaster.broadcast_ephemeral(room.name, event("gameStarted", {"room": room.name}))
            elif outcome.action is RoleAction.END_GAME:
                await self.broadcaster.broadcast_ephemeral(room.name, event("gameEnded", {"room": room.name}))
                await self._announce_battlefield(outcome.snapshot)
            elif outcome.action is RoleAction.PLACE_ASSET:
                await self.broadcaster.broadcast_ephemeral(room.name, event("assetPlaced", outcome.asset.wire()))
        return outcome

    async def battlefield_toggle(self, connection_id: str, request: BattlefieldRequest, join: bool) -> RoomSnapshot:
        binding = self._binding_for(connection_id, request.room)
        async with self._transaction(binding.room) as room:
            outcome = self.store.apply_battlefield_toggle(room.name, connection_id, join)
            if not outcome.changed:
                await self.broadcaster.broadcast_to_connection(
                    connection_id, event("roomUpdate", outcome.snapshot.wire())
                )
                return outcome.snapshot
            await self.broadcaster.broadcast_room_update(room.name, outcome.snapshot)
            name = "playerJoinedBattlefield" if join else "playerLeftBattlefield"
            await self.broadcaster.broadcast_ephemeral(room.name, event(name, _who(outcome.identity)))
            await self._announce_battlefield(outcome.snapshot)
        return outcome.snapshot

    async def roll_dice(self, connection_id: str, request: RollDiceRequest) -> DiceRoll:
        binding = self._binding_for(connection_id, request.room)
        async with self._transaction(binding.room) as room:
            actor = room.member(connection_id)
            if actor is None:
                raise NotFoundError("You are not in this room", kind="NotInRoom")
            result = self.store.record_dice_roll(room.name, actor.display_name, request.die_kind)
            await self.broadcaster.broadcast_ephemeral(room.name, event("diceRolled", result.wire()))
        return result

    async def move_token(self, connection_id: str, request: MoveTokenRequest) -> RoomSnapshot:
        binding = self._binding_for(connection_id, request.room)
        async with self._transaction(binding.room) as room:
            outcome = self.store.move_token(room.name, connection_id, request.dx, request.dy)
            await self.broadcaster.broadcast_room_update(room.name, outcome.snapshot)
            await self.broadcaster.broadcast_ephemeral(room.name, event("tokenMoved", outcome.token.wire()))
            if outcome.discovered is not None:
                await self.broadcaster.broadcast_ephemeral(
                    room.name,
                    event("assetDiscovered", {"asset": outcome.discovered.wire(), **_who(room.member(connection_id))}),
                )
        return outcome.snapshot

    async def discover_asset(self, connection_id: str, request: DiscoverAssetRequest) -> RoomSnapshot:
        binding = self._binding_for(connection_id, request.room)
        async with self._transaction(binding.room) as room:
            outcome = self.store.discover_asset(room.name, connection_id, request.asset_id)
            await self.broadcaster.broadcast_room_update(room.name, outcome.snapshot)
            await self.broadcaster.broadcast_ephemeral(
                room.name,
                event("assetDiscovered", {"asset": outcome.asset.wire(), **_who(outcome.identity)}),
            )
        return outcome.snapshot


__all__ = ["new_connection_id", "SessionLifecycleManager"]
