from fastapi import APIRouter, HTTPException, Request
from typing import List
from schemas.rooms import (
    CreateRoomRequest, JoinRoomRequest, LeaveRoomRequest, UpdateStatusRequest,
    UpdateGameStateRequest, LeaveRoomResponse, Room, GameState, RoomStatus,
)
from multiplayer.manager import MultiplayerManager
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_manager(request: Request) -> MultiplayerManager:
    return request.app.state.manager


@rooms_router.post("/", response_model=Room, status_code=201)
async def create_room(room: CreateRoomRequest, request: Request):
    # Body: { "name": "Friends", "host": "alice", "game": "Spy", "max_players": 4 }
    logger.info(f"Room creation request: name={room.name}, host={room.host}, game={room.game}, max_players={room.max_players}")
    return get_manager(request).create_room(room.name, room.host, room.game, room.max_players)


@rooms_router.get("/", response_model=List[Room])
async def list_rooms(request: Request):
    return get_manager(request).get_all_rooms()


@rooms_router.get("/{room_id}", response_model=Room)
async def get_room_details(room_id: str, request: Request):
    room = get_manager(request).get_room(room_id.upper())
    if not room:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return room


@rooms_router.post("/{room_id}/join", response_model=Room)
async def join_room(room_id: str, join_room_request: JoinRoomRequest, request: Request):
    manager = get_manager(request)
    room_id = room_id.upper()
    player = join_room_request.player
    logger.info(f"Join room request for {room_id}, player: {player}")

    room = manager.get_room(room_id)
    if not room:
        logger.warning(f"Join room failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    # Members may rejoin a running game; newcomers may not
    if room.status == RoomStatus.PLAYING and player not in room.players:
        logger.warning(f"Join room failed: Room {room_id} game already in progress")
        raise HTTPException(status_code=409, detail="Game is already in progress")

    updated = manager.join_room(room_id, player)
    if not updated:
        logger.warning(f"Join room failed: Room {room_id} is full ({len(room.players)}/{room.max_players})")
        raise HTTPException(status_code=403, detail="Room is full")
    return updated


@rooms_router.post("/{room_id}/leave", response_model=LeaveRoomResponse)
async def leave_room(room_id: str, leave_room_request: LeaveRoomRequest, request: Request):
    manager = get_manager(request)
    room_id = room_id.upper()
    logger.info(f"Leave room request for {room_id}, player: {leave_room_request.player}")

    if not manager.get_room(room_id):
        logger.warning(f"Leave room failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    # None here means the room was emptied and deleted
    return LeaveRoomResponse(room=manager.leave_room(room_id, leave_room_request.player))


@rooms_router.post("/{room_id}/status", response_model=Room)
async def update_room_status(room_id: str, status_request: UpdateStatusRequest, request: Request):
    manager = get_manager(request)
    room_id = room_id.upper()
    logger.info(f"Status update request for {room_id} by {status_request.player}: {status_request.status.value}")

    room = manager.get_room(room_id)
    if not room:
        logger.warning(f"Status update failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")

    if room.host != status_request.player:
        logger.warning(f"Status update failed: {status_request.player} is not the host ({room.host}) of room {room_id}")
        raise HTTPException(status_code=403, detail="Only the host can change the room status")

    return manager.update_room_status(room_id, status_request.status)


@rooms_router.get("/{room_id}/game", response_model=GameState)
async def get_game_state(room_id: str, request: Request):
    state = get_manager(request).get_game_state(room_id.upper())
    if not state:
        raise HTTPException(status_code=404, detail="Game state not found")
    return state


@rooms_router.put("/{room_id}/game", response_model=GameState)
async def update_game_state(room_id: str, game_request: UpdateGameStateRequest, request: Request):
    room_id = room_id.upper()
    state = get_manager(request).update_game_state(room_id, game_request.game_data)
    if not state:
        logger.warning(f"Game state update failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return state
