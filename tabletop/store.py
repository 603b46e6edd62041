"""Room State Store.

The store owns every ``Room`` record and is the only component that writes
room data. Each ``apply_*`` method is synchronous: it reads the room, decides
(via the admission policy or the phase rules below), mutates and returns a
detached snapshot. Callers hold the room lock around the call and around the
broadcast that follows, so no two transactions on one room interleave.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from . import dice
from .config import Settings
from .constants import GamePhase, Role, RoleAction
from .errors import (
    AdmissionError,
    AuthorizationError,
    InvalidRequestError,
    NotFoundError,
    StateError,
)
from .policy import AdmissionPolicy
from .room import Room
from .schemas import (
    Asset,
    DiceRoll,
    Identity,
    RoleActionRequest,
    RoomSnapshot,
    RoomSummary,
    Token,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Transaction outcomes
# ---------------------------------------------------------------------------

@dataclass
class JoinOutcome:
    snapshot: RoomSnapshot
    identity: Identity
    # stale connections evicted by reconnect-replace
    evicted: List[str] = field(default_factory=list)
    changed: bool = True
    host_changed: bool = False


@dataclass
class LeaveOutcome:
    snapshot: Optional[RoomSnapshot]
    # every connection that left, the requested one first
    removed: List[Identity] = field(default_factory=list)
    left_battlefield: List[Identity] = field(default_factory=list)
    host_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.removed)


@dataclass
class ActionOutcome:
    action: RoleAction
    # None once the room has been cleared
    snapshot: Optional[RoomSnapshot]
    changed: bool = True
    removed: List[Identity] = field(default_factory=list)
    left_battlefield: List[Identity] = field(default_factory=list)
    asset: Optional[Asset] = None
    host_changed: bool = False


@dataclass
class BattlefieldOutcome:
    snapshot: RoomSnapshot
    identity: Identity
    joined: bool
    changed: bool = True


@dataclass
class MoveOutcome:
    snapshot: RoomSnapshot
    token: Token
    discovered: Optional[Asset] = None


@dataclass
class DiscoverOutcome:
    snapshot: RoomSnapshot
    identity: Identity
    asset: Asset


class RoomStore:
    """Canonical per-room state, keyed by room name."""

    def __init__(
        self,
        policy: AdmissionPolicy,
        settings: Optional[Settings] = None,
        rng: Optional[dice.RandomSource] = None,
    ):
        self._policy = policy
        self._settings = settings or Settings()
        self._rng = rng
        self._rooms: Dict[str, Room] = {}

    @property
    def policy(self) -> AdmissionPolicy:
        return self._policy

    # -------------------- Lookup -------------------- #

    def get(self, room_name: str) -> Optional[Room]:
        return self._rooms.get((room_name or "").strip())

    def get_or_create(self, room_name: str) -> Room:
        name = (room_name or "").strip()
        if not name:
            raise InvalidRequestError("A room name is required")
        room = self._rooms.get(name)
        if room is None:
            room = Room(name, columns=self._settings.grid_columns, rows=self._settings.grid_rows)
            self._rooms[name] = room
            logger.info("Room %r created", name)
        return room

    def summaries(self) -> List[RoomSummary]:
        return [
            RoomSummary(
                room=name,
                host_name=room.host.display_name if room.host else None,
                player_count=len(room.players),
                phase=room.phase,
            )
            for name, room in self._rooms.items()
        ]

    def _require_room(self, room_name: str) -> Room:
        room = self.get(room_name)
        if room is None:
            raise NotFoundError(f"Room {room_name!r} does not exist", kind="NotInRoom")
        return room

    @staticmethod
    def _require_member(room: Room, connection_id: str) -> Identity:
        identity = room.member(connection_id)
        if identity is None:
            raise NotFoundError("You are not in this room", kind="NotInRoom")
        return identity

    def _battlefield_identities(self, room: Room, connection_ids) -> List[Identity]:
        result = []
        for cid in connection_ids:
            identity = room.member(cid)
            if identity is not None:
                result.append(identity)
        return result

    # -------------------- Membership -------------------- #

    def apply_join(self, room_name: str, identity: Identity) -> JoinOutcome:
        """Admit *identity* into the room, creating the room on first use.

        A room created by a join that is then rejected is discarded again.

        Raises
        ------
        AdmissionError
            With one of the ``AdmissionReason`` values when the policy rejects.
        """
        room = self.get_or_create(room_name)
        if room.member(identity.connection_id) == identity:
            # same connection, same name and role: nothing to do
            return JoinOutcome(snapshot=room.snapshot(), identity=identity, changed=False)

        decision = self._policy.decide(room.snapshot(), identity)
        if not decision.accepted:
            logger.info(
                "Join rejected: room=%r name=%r role=%s reason=%s",
                room.name, identity.display_name, identity.role.value, decision.reason.value,
            )
            if room.version == 0 and not room.members():
                # created for this request only
                self._rooms.pop(room.name, None)
            raise AdmissionError(decision.reason)

        had_host = room.host is not None
        for stale in decision.evict:
            room.remove_connection(stale)
            logger.info("Evicting stale connection %s from room %r", stale, room.name)
        room.remove_connection(identity.connection_id)
        room.seat(identity, creator_is_host=self._policy.creator_is_host)
        room.touch()
        logger.info(
            "Joined: room=%r name=%r role=%s connection=%s",
            room.name, identity.display_name, identity.role.value, identity.connection_id,
        )
        return JoinOutcome(
            snapshot=room.snapshot(),
            identity=identity,
            evicted=list(decision.evict),
            host_changed=had_host != (room.host is not None),
        )

    def apply_leave(self, room_name: str, connection_id: str) -> LeaveOutcome:
        """Remove a connection from every collection of the room.

        Leaving a room that does not exist, or that the connection is not in,
        is a no-op and returns an outcome with nothing removed.
        """
        room = self.get(room_name)
        if room is None:
            return LeaveOutcome(snapshot=None)
        before = {identity.connection_id: identity for identity in room.members()}
        on_battlefield = set(room.battlefield)
        had_host = room.host is not None

        removed = room.remove_connection(
            connection_id, cascade_host=self._settings.creator_removal_cascades_host
        )
        if not removed:
            return LeaveOutcome(snapshot=room.snapshot())
        room.touch()
        logger.info("Left: room=%r connections=%s", room.name, removed)
        return LeaveOutcome(
            snapshot=room.snapshot(),
            removed=[before[cid] for cid in removed],
            left_battlefield=[before[cid] for cid in removed if cid in on_battlefield],
            host_changed=had_host != (room.host is not None),
        )

    # -------------------- Host / creator actions -------------------- #

    def apply_role_action(self, room_name: str, actor_connection_id: str,
                          request: RoleActionRequest) -> ActionOutcome:
        room = self._require_room(room_name)
        actor = self._require_member(room, actor_connection_id)
        if not actor.privileged:
            raise AuthorizationError(
                f"Only the host or creator can {request.action.value.replace('_', ' ')}"
            )
        handlers: Dict[RoleAction, Callable[[Room, Identity, RoleActionRequest], ActionOutcome]] = {
            RoleAction.OPEN_BATTLEFIELD: self._open_battlefield,
            RoleAction.START_GAME: self._start_game,
            RoleAction.END_GAME: self._end_game,
            RoleAction.CLEAR_ROOM: self._clear_room,
            RoleAction.REMOVE_PLAYER: self._remove_player,
            RoleAction.PLACE_ASSET: self._place_asset,
            RoleAction.SET_BACKGROUND: self._set_background,
        }
        outcome = handlers[request.action](room, actor, request)
        if outcome.changed:
            logger.info(
                "Action %s by %r in room %r", request.action.value, actor.display_name, room_name
            )
        return outcome

    def _open_battlefield(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        if room.phase is GamePhase.IN_PROGRESS:
            raise StateError("The game is already in progress")
        if room.phase is GamePhase.BATTLEFIELD_OPEN:
            return ActionOutcome(request.action, room.snapshot(), changed=False)
        room.phase = GamePhase.BATTLEFIELD_OPEN
        room.touch()
        return ActionOutcome(request.action, room.snapshot())

    def _start_game(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        if room.phase is GamePhase.IN_PROGRESS:
            raise StateError("The game is already in progress")
        if room.phase is not GamePhase.BATTLEFIELD_OPEN:
            raise StateError("Open the battlefield before starting the game")
        if not room.players:
            raise StateError("At least one player is needed to start the game")
        room.phase = GamePhase.IN_PROGRESS
        room.touch()
        return ActionOutcome(request.action, room.snapshot())

    def _end_game(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        if room.phase is not GamePhase.IN_PROGRESS:
            raise StateError("No game is in progress")
        left = self._battlefield_identities(room, list(room.battlefield))
        room.reset_round()
        room.phase = GamePhase.BATTLEFIELD_OPEN
        room.touch()
        return ActionOutcome(request.action, room.snapshot(), left_battlefield=left)

    def _clear_room(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        members = room.members()
        self._rooms.pop(room.name, None)
        logger.info("Room %r cleared by %r, evicting %d", room.name, actor.display_name, len(members))
        return ActionOutcome(request.action, None, removed=members)

    def _remove_player(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        target: Optional[Identity] = None
        if request.target_connection_id:
            target = room.member(request.target_connection_id)
        if target is None and request.target_display_name:
            target = room.find_by_name(request.target_display_name)
        if target is None:
            raise NotFoundError("No such player in this room", kind="UnknownTarget")
        if target.connection_id == actor.connection_id:
            raise AuthorizationError("You cannot remove yourself; leave the room instead")
        if target.role is Role.CREATOR:
            raise AuthorizationError("The creator cannot be removed")
        if target.role is Role.HOST and actor.role is not Role.CREATOR:
            raise AuthorizationError("Only the creator can remove the host")

        before = {identity.connection_id: identity for identity in room.members()}
        on_battlefield = set(room.battlefield)
        had_host = room.host is not None
        removed = room.remove_connection(target.connection_id)
        room.touch()
        return ActionOutcome(
            request.action,
            room.snapshot(),
            removed=[before[cid] for cid in removed],
            left_battlefield=[before[cid] for cid in removed if cid in on_battlefield],
            host_changed=had_host != (room.host is not None),
        )

    def _place_asset(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        asset = room.assets.get(request.asset_id)
        if asset is None:
            raise NotFoundError(f"Unknown asset {request.asset_id}", kind="UnknownAsset")
        if not room.in_bounds(request.x, request.y):
            raise InvalidRequestError("Asset position is outside the battlefield")
        asset.x = request.x
        asset.y = request.y
        asset.discovered = False
        room.touch()
        return ActionOutcome(request.action, room.snapshot(), asset=asset.model_copy())

    def _set_background(self, room: Room, actor: Identity, request: RoleActionRequest) -> ActionOutcome:
        background = (request.background or "").strip() or None
        if background == room.background:
            return ActionOutcome(request.action, room.snapshot(), changed=False)
        room.background = background
        room.touch()
        return ActionOutcome(request.action, room.snapshot())

    # -------------------- Battlefield -------------------- #

    def apply_battlefield_toggle(self, room_name: str, connection_id: str, join: bool) -> BattlefieldOutcome:
        room = self._require_room(room_name)
        identity = self._require_member(room, connection_id)

        if not join:
            if connection_id not in room.battlefield:
                raise NotFoundError("You are not on the battlefield", kind="NotInRoom")
            del room.battlefield[connection_id]
            room.touch()
            return BattlefieldOutcome(room.snapshot(), identity, joined=False)

        if identity.privileged and not self._settings.privileged_may_enter_battlefield:
            raise AuthorizationError("The host and creator watch the battlefield", kind="NotPermitted")
        if room.phase is GamePhase.LOBBY:
            raise StateError("The battlefield is not open yet")
        if connection_id in room.battlefield:
            return BattlefieldOutcome(room.snapshot(), identity, joined=True, changed=False)
        cell = room.free_cell()
        if cell is None:
            raise StateError("The battlefield is full")
        room.battlefield[connection_id] = cell
        room.touch()
        return BattlefieldOutcome(room.snapshot(), identity, joined=True)

    def move_token(self, room_name: str, connection_id: str, dx: int, dy: int) -> MoveOutcome:
        """Step a battlefield token one square; landing on a hidden asset finds it."""
        room = self._require_room(room_name)
        identity = self._require_member(room, connection_id)
        if connection_id not in room.battlefield:
            raise NotFoundError("You are not on the battlefield", kind="NotInRoom")
        if room.phase is not GamePhase.IN_PROGRESS:
            raise StateError("Tokens only move while the game is in progress")
        if abs(dx) + abs(dy) != 1:
            raise InvalidRequestError("Move exactly one square up, down, left or right")

        x, y = room.battlefield[connection_id]
        nx, ny = x + dx, y + dy
        if not room.in_bounds(nx, ny):
            raise StateError("That move leaves the battlefield")
        occupant = room.occupant(nx, ny)
        if occupant is not None and occupant != connection_id:
            raise StateError("That square is occupied")

        room.battlefield[connection_id] = (nx, ny)
        discovered: Optional[Asset] = None
        for asset in room.assets.values():
            if not asset.discovered and asset.placed and (asset.x, asset.y) == (nx, ny):
                asset.discovered = True
                discovered = asset.model_copy()
                break
        room.touch()
        token = Token(connection_id=connection_id, display_name=identity.display_name, x=nx, y=ny)
        return MoveOutcome(room.snapshot(), token, discovered)

    def discover_asset(self, room_name: str, connection_id: str, asset_id: int) -> DiscoverOutcome:
        room = self._require_room(room_name)
        identity = self._require_member(room, connection_id)
        if connection_id not in room.battlefield:
            raise NotFoundError("You are not on the battlefield", kind="NotInRoom")
        if room.phase is not GamePhase.IN_PROGRESS:
            raise StateError("Assets can only be discovered while the game is in progress")
        asset = room.assets.get(asset_id)
        if asset is None:
            raise NotFoundError(f"Unknown asset {asset_id}", kind="UnknownAsset")
        if not asset.placed or asset.discovered:
            raise StateError("That asset is not hidden on the battlefield")
        x, y = room.battlefield[connection_id]
        if max(abs(asset.x - x), abs(asset.y - y)) > 1:
            raise StateError("You are too far away to discover that asset")
        asset.discovered = True
        room.touch()
        return DiscoverOutcome(room.snapshot(), identity, asset.model_copy())

    # -------------------- Dice -------------------- #

    def record_dice_roll(self, room_name: str, actor_display_name: str, die_kind: str) -> DiceRoll:
        """Roll for *actor_display_name*; the result is relayed, never stored."""
        result = dice.roll_for(actor_display_name, die_kind, self._rng)
        logger.debug("Dice %s=%d by %r in room %r", result.die_kind, result.value, actor_display_name, room_name)
        return result


__all__ = [
    "JoinOutcome",
    "LeaveOutcome",
    "ActionOutcome",
    "BattlefieldOutcome",
    "MoveOutcome",
    "DiscoverOutcome",
    "RoomStore",
]
