from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException

from ..schemas import RoomSnapshot, RoomSummary
from ..state import store

router = APIRouter(prefix="", tags=["rooms"])


@router.get("/rooms", response_model=List[RoomSummary])
async def list_rooms():
    return store.summaries()


@router.get("/rooms/{room_name}", response_model=RoomSnapshot)
async def get_room(room_name: str):
    room = store.get(room_name)
    if room is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return room.snapshot()
