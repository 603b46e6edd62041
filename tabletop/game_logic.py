"""Websocket message dispatch.

Each inbound frame is a JSON object ``{"type": <event>, ...fields}``. The
frame is validated into its request model before anything is touched, then
handed to the session lifecycle manager. Failures are reported only to the
sender: ``joinError`` when the admission policy turns a ``joinRoom`` away,
``error`` for everything else. This module knows nothing about FastAPI; the
router feeds it decoded frames.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from pydantic import ValidationError

from .broadcaster import event
from .errors import AdmissionReason, InvalidRequestError, LobbyError
from .lifecycle import SessionLifecycleManager
from .schemas import (
    BattlefieldRequest,
    ClearRoomRequest,
    DiscoverAssetRequest,
    EndGameRequest,
    JoinRoomRequest,
    MoveTokenRequest,
    OpenBattlefieldRequest,
    PlaceAssetRequest,
    RemovePlayerRequest,
    RollDiceRequest,
    SetBackgroundRequest,
    StartGameRequest,
)

logger = logging.getLogger(__name__)

Handler = Callable[[SessionLifecycleManager, str, Dict[str, Any]], Awaitable[Any]]

ROLE_ACTIONS = {
    "openBattlefield": OpenBattlefieldRequest,
    "startGame": StartGameRequest,
    "endGame": EndGameRequest,
    "clearRoom": ClearRoomRequest,
    "removePlayer": RemovePlayerRequest,
    "placeAsset": PlaceAssetRequest,
    "setBackground": SetBackgroundRequest,
}


def describe_validation_error(exc: ValidationError) -> str:
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return "; ".join(problems) or "Invalid request"


# ---------------------------------------------------------------------------
# Handlers (one per event type)
# ---------------------------------------------------------------------------

async def handle_join_room(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.join(connection_id, JoinRoomRequest.model_validate(data))


async def handle_leave_room(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.leave(connection_id)


async def handle_join_battlefield(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.battlefield_toggle(connection_id, BattlefieldRequest.model_validate(data), join=True)


async def handle_leave_battlefield(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.battlefield_toggle(connection_id, BattlefieldRequest.model_validate(data), join=False)


async def handle_roll_dice(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.roll_dice(connection_id, RollDiceRequest.model_validate(data))


async def handle_move_token(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.move_token(connection_id, MoveTokenRequest.model_validate(data))


async def handle_discover_asset(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.discover_asset(connection_id, DiscoverAssetRequest.model_validate(data))


async def handle_ping(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
    await lifecycle.broadcaster.broadcast_to_connection(connection_id, event("pong"))


def _role_action_handler(model) -> Handler:
    async def _handle(lifecycle: SessionLifecycleManager, connection_id: str, data: dict):
        await lifecycle.role_action(connection_id, model.model_validate(data))

    return _handle


HANDLERS: Dict[str, Handler] = {
    "joinRoom": handle_join_room,
    "leaveRoom": handle_leave_room,
    "joinBattlefield": handle_join_battlefield,
    # older clients spell it with a capital F
    "joinBattleField": handle_join_battlefield,
    "leaveBattlefield": handle_leave_battlefield,
    "rollDice": handle_roll_dice,
    "moveToken": handle_move_token,
    "discoverAsset": handle_discover_asset,
    "ping": handle_ping,
    **{name: _role_action_handler(model) for name, model in ROLE_ACTIONS.items()},
}


JOIN_ERROR_KINDS = frozenset(reason.value for reason in AdmissionReason)


def _reply_type(msg_type: Any, exc: LobbyError) -> str:
    # joinError only ever carries an admission reason
    if msg_type == "joinRoom" and exc.kind in JOIN_ERROR_KINDS:
        return "joinError"
    return "error"


# ---------------------------------------------------------------------------
# Primary dispatcher used by websocket endpoint
# ---------------------------------------------------------------------------

async def handle_ws_message(lifecycle: SessionLifecycleManager, connection_id: str, data: Any) -> None:
    msg_type = data.get("type") if isinstance(data, dict) else None
    logger.debug("Frame from %s: %s", connection_id, msg_type)
    try:
        handler = HANDLERS.get(msg_type) if isinstance(msg_type, str) else None
        if handler is None:
            raise InvalidRequestError(f"Unknown event type {msg_type!r}")
        await handler(lifecycle, connection_id, data)
    except ValidationError as exc:
        error = InvalidRequestError(describe_validation_error(exc))
        reply = event(_reply_type(msg_type, error), error.to_payload())
        await lifecycle.broadcaster.broadcast_to_connection(connection_id, reply)
    except LobbyError as exc:
        logger.debug("Rejected %s from %s: %s %s", msg_type, connection_id, exc.kind, exc.message)
        reply = event(_reply_type(msg_type, exc), exc.to_payload())
        await lifecycle.broadcaster.broadcast_to_connection(connection_id, reply)


__all__ = ["HANDLERS", "ROLE_ACTIONS", "describe_validation_error", "handle_ws_message"]
