from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from constants import ROOM_ID_LENGTH, MIN_PLAYERS, MAX_PLAYERS, DEFAULT_MAX_PLAYERS


class RoomStatus(str, Enum):
    WAITING = "waiting"
    PLAYING = "playing"
    FINISHED = "finished"


def as_utc(value: datetime) -> datetime:
    # Records written without an offset are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Room(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(pattern=rf"^[A-Z0-9]{{{ROOM_ID_LENGTH}}}$")
    name: str
    host: str
    players: list[str]
    game: str
    status: RoomStatus = RoomStatus.WAITING
    max_players: int = Field(alias="maxPlayers", ge=MIN_PLAYERS, le=MAX_PLAYERS)
    created_at: datetime = Field(alias="createdAt")
    last_updated: datetime = Field(alias="lastUpdated")

    @field_validator("created_at", "last_updated")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class GameState(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomId")
    game_data: Any = Field(default=None, alias="gameData")
    # Kept so records written by other clients survive a round trip
    current_player: Optional[str] = Field(default=None, alias="currentPlayer")
    moves: Optional[list[Any]] = None
    last_updated: datetime = Field(alias="lastUpdated")

    @field_validator("last_updated")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return as_utc(value)


class SyncSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    rooms: list[Room] = Field(default_factory=list)
    game_states: list[GameState] = Field(default_factory=list, alias="gameStates")
    last_sync: int = Field(default=0, alias="lastSync")


class CreateRoomRequest(BaseModel):
    name: str = Field(min_length=1)
    host: str = Field(min_length=1)
    game: str
    max_players: int = Field(default=DEFAULT_MAX_PLAYERS, ge=MIN_PLAYERS, le=MAX_PLAYERS)

class JoinRoomRequest(BaseModel):
    player: str = Field(min_length=1)

class LeaveRoomRequest(BaseModel):
    player: str = Field(min_length=1)

class UpdateStatusRequest(BaseModel):
    player: str
    status: RoomStatus

class UpdateGameStateRequest(BaseModel):
    game_data: Any = None

class LeaveRoomResponse(BaseModel):
    room: Optional[Room] = None
