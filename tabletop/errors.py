"""Expected, recoverable failures reported back to the initiating connection.

Every error carries a stable ``kind`` string the client switches on, plus a
human-readable ``message``. None of these are ever broadcast to a room.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional


class AdmissionReason(str, Enum):
    HOST_SLOT_TAKEN = "HostSlotTaken"
    NOT_AUTHORIZED_FOR_HOST = "NotAuthorizedForHost"
    HOST_REQUIRED_FIRST = "HostRequiredFirst"
    ROOM_FULL = "RoomFull"
    NAME_TAKEN = "NameTaken"
    MISSING_FIELDS = "MissingFields"


ADMISSION_MESSAGES: Dict[AdmissionReason, str] = {
    AdmissionReason.HOST_SLOT_TAKEN: "That seat is already taken in this room.",
    AdmissionReason.NOT_AUTHORIZED_FOR_HOST: "This name is not allowed to take the host seat.",
    AdmissionReason.HOST_REQUIRED_FIRST: "Waiting for the host to open the room.",
    AdmissionReason.ROOM_FULL: "The room is full.",
    AdmissionReason.NAME_TAKEN: "That name is already in use in this room.",
    AdmissionReason.MISSING_FIELDS: "Room, display name and a valid role are required.",
}


class LobbyError(Exception):
    kind = "Error"

    def __init__(self, message: str = "", kind: Optional[str] = None):
        self.kind = kind or self.kind
        self.message = message or self.kind
        super().__init__(self.message)

    def to_payload(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class AdmissionError(LobbyError):
    """A join request was rejected by the admission policy."""

    def __init__(self, reason: AdmissionReason, message: str = ""):
        super().__init__(message or ADMISSION_MESSAGES[reason], kind=reason.value)
        self.reason = reason


class InvalidRequestError(LobbyError):
    """Malformed or incomplete input; raised before any state is touched."""

    kind = AdmissionReason.MISSING_FIELDS.value


class AuthorizationError(LobbyError):
    # "Forbidden" for privileged actions, "NotPermitted" for battlefield entry.
    kind = "Forbidden"


class StateError(LobbyError):
    # "InvalidState" for phase violations, "AlreadyBound" for a second room.
    kind = "InvalidState"


class NotFoundError(LobbyError):
    # "NotInRoom", "UnknownAsset" or "UnknownTarget".
    kind = "NotInRoom"


__all__ = [
    "AdmissionReason",
    "ADMISSION_MESSAGES",
    "LobbyError",
    "AdmissionError",
    "InvalidRequestError",
    "AuthorizationError",
    "StateError",
    "NotFoundError",
]
