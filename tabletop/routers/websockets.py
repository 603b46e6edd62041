from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from ..broadcaster import event
from ..errors import InvalidRequestError
from ..game_logic import handle_ws_message
from ..state import lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["ws"])


@router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket):
    await ws.accept()
    connection_id = lifecycle.connect(ws)
    try:
        await ws.send_json(event("welcome", {"connectionId": connection_id}))
        while True:
            message = await ws.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            try:
                # binary frames carry no "text" and are rejected like bad JSON
                data = json.loads(message["text"])
            except (KeyError, TypeError, ValueError):
                error = InvalidRequestError("Frames must be JSON objects")
                await ws.send_json(event("error", error.to_payload()))
                continue
            await handle_ws_message(lifecycle, connection_id, data)
    except WebSocketDisconnect:
        pass
    except RuntimeError as exc:
        # receiving on a socket the server already closed (eviction)
        logger.debug("Connection %s ended: %s", connection_id, exc)
    except Exception:
        logger.exception("WebSocket error on connection %s", connection_id)
    finally:
        await lifecycle.disconnect(connection_id)
