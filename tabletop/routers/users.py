from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, status

from ..schemas import LoginRequest, LoginResponse, LogoutRequest, LogoutResponse
from ..state import credentials, lifecycle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="", tags=["users"])


@router.post("/login", response_model=LoginResponse)
async def login(req: LoginRequest):
    reason = credentials.check(req.role, req.display_name, req.credential)
    if reason is not None:
        logger.info("Login refused for %r as %s: %s", req.display_name, req.role.value, reason)
        return LoginResponse(accepted=False, reason=reason)
    return LoginResponse(accepted=True)


@router.post("/logout", response_model=LogoutResponse)
async def logout(req: LogoutRequest):
    if not req.connection_id:
        return LogoutResponse()
    binding = lifecycle.registry.lookup(req.connection_id)
    if binding is None:
        return LogoutResponse()
    if binding.identity.role is not req.role:
        logger.info("Logout of %s refused: claimed %s, bound as %s",
                    req.connection_id, req.role.value, binding.identity.role.value)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Role does not match this connection")
    await lifecycle.leave(req.connection_id)
    logger.info("Logout of %s (%s) left room %r", req.connection_id, req.role.value, binding.room)
    return LogoutResponse(left_room=binding.room)
