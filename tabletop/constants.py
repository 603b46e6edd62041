from __future__ import annotations

from enum import Enum
from typing import Dict, Tuple


class Role(str, Enum):
    CREATOR = "creator"
    HOST = "host"
    PLAYER = "player"


PRIVILEGED_ROLES = {Role.CREATOR, Role.HOST}


class GamePhase(str, Enum):
    LOBBY = "lobby"
    BATTLEFIELD_OPEN = "battlefield_open"
    IN_PROGRESS = "in_progress"


class RoleAction(str, Enum):
    """Host/creator-only actions understood by ``RoomStore.apply_role_action``."""

    OPEN_BATTLEFIELD = "open_battlefield"
    START_GAME = "start_game"
    END_GAME = "end_game"
    CLEAR_ROOM = "clear_room"
    REMOVE_PLAYER = "remove_player"
    PLACE_ASSET = "place_asset"
    SET_BACKGROUND = "set_background"


# Every room starts with these markers, unplaced and undiscovered.
DEFAULT_ASSETS: Tuple[Tuple[int, str], ...] = (
    (1, "Treasure Chest"),
    (2, "Magic Sword"),
    (3, "Potion"),
)

# Named dice the client can render; any other "d<N>" is accepted too.
STANDARD_DICE: Dict[str, int] = {
    "d4": 4,
    "d6": 6,
    "d8": 8,
    "d10": 10,
    "d12": 12,
    "d20": 20,
    "d50": 50,
    "d100": 100,
}
MAX_DIE_SIDES = 1000

# Websocket close codes sent when the server terminates a connection.
CLOSE_REMOVED = 4002
CLOSE_REPLACED = 4003
CLOSE_ROOM_CLEARED = 4004

__all__ = [
    "Role",
    "PRIVILEGED_ROLES",
    "GamePhase",
    "RoleAction",
    "DEFAULT_ASSETS",
    "STANDARD_DICE",
    "MAX_DIE_SIDES",
    "CLOSE_REMOVED",
    "CLOSE_REPLACED",
    "CLOSE_ROOM_CLEARED",
]
