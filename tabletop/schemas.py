"""Pydantic data schemas used across the lobby service.

This module centralises the runtime records (identities, assets, room
snapshots), the tagged client-to-server event requests and the REST
request / response bodies, so every other module imports them from a single
location. Everything that goes over the wire is camelCase; snake_case field
names are accepted on input as well.
"""
from __future__ import annotations

from typing import Annotated, ClassVar, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .constants import PRIVILEGED_ROLES, GamePhase, Role, RoleAction

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=64)]


class WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def wire(self) -> dict:
        """Return the JSON-ready camelCase representation."""
        return self.model_dump(by_alias=True, mode="json")


# -----------------------------
# Runtime records
# -----------------------------

class Identity(WireModel):
    """A display name and role bound to one live connection inside a room."""

    model_config = ConfigDict(frozen=True)

    connection_id: str
    display_name: str
    role: Role

    @property
    def privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES

    def same_name(self, other_name: str) -> bool:
        return self.display_name.casefold() == other_name.strip().casefold()


class Asset(WireModel):
    """A host-placed marker; the position only matters until it is discovered."""

    asset_id: int
    name: str
    x: Optional[int] = None
    y: Optional[int] = None
    discovered: bool = False

    @property
    def placed(self) -> bool:
        return self.x is not None and self.y is not None


class Token(WireModel):
    connection_id: str
    display_name: str
    x: int
    y: int


class RoomSnapshot(WireModel):
    room: str
    version: int = 0
    phase: GamePhase = GamePhase.LOBBY
    creator: Optional[Identity] = None
    host: Optional[Identity] = None
    players: List[Identity] = []
    battlefield_members: List[str] = []
    tokens: List[Token] = []
    assets: List[Asset] = []
    background: Optional[str] = None

    def members(self) -> List[Identity]:
        """Creator, host and players, each connection listed once."""
        seen = set()
        result: List[Identity] = []
        for identity in [self.creator, self.host, *self.players]:
            if identity is None or identity.connection_id in seen:
                continue
            seen.add(identity.connection_id)
            result.append(identity)
        return result

    @property
    def host_present(self) -> bool:
        return self.host is not None


class DiceRoll(WireModel):
    display_name: str
    die_kind: str
    sides: int
    value: int


class RoomSummary(WireModel):
    room: str
    host_name: Optional[str] = None
    player_count: int = 0
    phase: GamePhase = GamePhase.LOBBY


# -----------------------------
# Client -> server events
# -----------------------------

class JoinIdentity(WireModel):
    display_name: NonEmptyStr = Field(validation_alias=AliasChoices("displayName", "display_name", "name"))
    role: Role = Role.PLAYER


class JoinRoomRequest(WireModel):
    room: NonEmptyStr
    identity: JoinIdentity = Field(validation_alias=AliasChoices("identity", "user"))


class RoomScopedRequest(WireModel):
    """Base for events sent by an already joined connection.

    ``room`` is optional; when present it must name the room the connection is
    bound to.
    """

    room: Optional[str] = None


class RoleActionRequest(RoomScopedRequest):
    action: ClassVar[RoleAction]


class OpenBattlefieldRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.OPEN_BATTLEFIELD


class StartGameRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.START_GAME


class EndGameRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.END_GAME


class ClearRoomRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.CLEAR_ROOM


class RemovePlayerRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.REMOVE_PLAYER

    target_connection_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("targetConnectionId", "target_connection_id", "connectionId"),
    )
    target_display_name: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("targetDisplayName", "target_display_name", "displayName", "name"),
    )

    @model_validator(mode="after")
    def _require_target(self) -> "RemovePlayerRequest":
        if not (self.target_connection_id or (self.target_display_name or "").strip()):
            raise ValueError("targetConnectionId or targetDisplayName is required")
        return self


class PlaceAssetRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.PLACE_ASSET

    asset_id: int = Field(validation_alias=AliasChoices("assetId", "asset_id", "id"))
    x: int
    y: int


class SetBackgroundRequest(RoleActionRequest):
    action: ClassVar[RoleAction] = RoleAction.SET_BACKGROUND

    background: Optional[str] = Field(default=None, max_length=256)


class BattlefieldRequest(RoomScopedRequest):
    pass


class RollDiceRequest(RoomScopedRequest):
    die_kind: NonEmptyStr = Field(validation_alias=AliasChoices("dieKind", "die_kind", "die"))
    # Informational only; the roll is attributed to the bound identity.
    display_name: Optional[str] = None


class MoveTokenRequest(RoomScopedRequest):
    dx: int = Field(ge=-1, le=1)
    dy: int = Field(ge=-1, le=1)


class DiscoverAssetRequest(RoomScopedRequest):
    asset_id: int = Field(validation_alias=AliasChoices("assetId", "asset_id", "id"))


# -----------------------------
# REST request / response models
# -----------------------------

class LoginRequest(WireModel):
    role: Role
    display_name: NonEmptyStr
    credential: Optional[str] = None


class LoginResponse(WireModel):
    accepted: bool
    reason: Optional[str] = None


class LogoutRequest(WireModel):
    role: Role
    connection_id: Optional[str] = None


class LogoutResponse(WireModel):
    ok: bool = True
    left_room: Optional[str] = None


__all__ = [
    "WireModel",
    # runtime
    "Identity",
    "Asset",
    "Token",
    "RoomSnapshot",
    "DiceRoll",
    "RoomSummary",
    # websocket events
    "JoinIdentity",
    "JoinRoomRequest",
    "RoomScopedRequest",
    "RoleActionRequest",
    "OpenBattlefieldRequest",
    "StartGameRequest",
    "EndGameRequest",
    "ClearRoomRequest",
    "RemovePlayerRequest",
    "PlaceAssetRequest",
    "SetBackgroundRequest",
    "BattlefieldRequest",
    "RollDiceRequest",
    "MoveTokenRequest",
    "DiscoverAssetRequest",
    # REST
    "LoginRequest",
    "LoginResponse",
    "LogoutRequest",
    "LogoutResponse",
]
