"""Application entry point.

Run locally:
    uvicorn tabletop.app:app --reload --port 5000

Clients open ``/ws`` and speak the JSON event protocol handled in
``tabletop.game_logic``; ``/login``, ``/logout`` and ``/rooms`` are plain REST.
"""
from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .routers import rooms as rooms_router
from .routers import users as users_router
from .routers import websockets as ws_router
from .state import settings


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


configure_logging(settings.log_level)

# -----------------------------
# FastAPI app instance
# -----------------------------

app = FastAPI(title="Tabletop Lobby")

# Allow all origins by default during development; set TABLETOP_CORS_ORIGINS in production.
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register routers
app.include_router(users_router.router)
app.include_router(rooms_router.router)
app.include_router(ws_router.router)


@app.get("/health")
async def health():
    return {"status": "ok"}


__all__ = ["app", "configure_logging"]
