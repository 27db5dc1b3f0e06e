"""
MultiplayerManager: owns room and game state for one process context.

Responsibilities:
1. Room lifecycle (create / join / leave / status)
2. Opaque per-room game state
3. Write-through of the full state to the shared store on every mutation
4. Running the reconciler that pulls newer state written by other contexts

Writes are whole-state and unconditional. Two contexts that mutate from the same
snapshot overwrite each other (last writer wins the key); that race is part of the
storage-polling model and is intentionally not locked away.

Missing rooms, full rooms and repeated joins are returned as None or as the
unchanged room. Store failures are logged and the in-memory state stays
authoritative until the next successful write.
"""
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional
from pydantic import TypeAdapter

from backend import RedisBackend
from constants import SYNC_INTERVAL_MS, ROOM_ID_MAX_ATTEMPTS, DEFAULT_MAX_PLAYERS
from exceptions import RoomIdExhausted
from logging_config import get_logger
from multiplayer.events import Callback, EventChannelRegistry
from multiplayer.naming import generate_room_id
from multiplayer.reconciler import Reconciler
from multiplayer.state_repository import StateRepository
from redis_keys import REDIS_ROOMS_KEY, REDIS_GAME_STATES_KEY, REDIS_SYNC_KEY, ROOMS_CHANNEL, ROOM_CHANNEL, GAME_CHANNEL
from schemas.rooms import GameState, Room, RoomStatus

logger = get_logger(__name__)

_rooms_adapter = TypeAdapter(List[Room])
_game_states_adapter = TypeAdapter(List[GameState])


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MultiplayerManager:
    def __init__(
        self,
        backend: RedisBackend,
        clock: Callable[[], datetime] = utc_now,
        sync_interval_ms: int = SYNC_INTERVAL_MS,
        id_generator: Callable[[], str] = generate_room_id,
    ):
        self.backend = backend
        self.clock = clock
        self.id_generator = id_generator
        self.rooms: StateRepository[Room] = StateRepository(lambda room: room.id)
        self.game_states: StateRepository[GameState] = StateRepository(lambda state: state.room_id)
        self.events = EventChannelRegistry()
        self.reconciler = Reconciler(backend, self.rooms, self.game_states, self.events, sync_interval_ms)
        self.load_from_storage()

    # ============ Lifecycle ============

    def start(self):
        """Start periodic reconciliation. Must be called from a running event loop."""
        self.reconciler.start()

    def destroy(self):
        """Stop the reconciler and drop every subscription."""
        self.reconciler.stop()
        self.events.clear()
        logger.info("MultiplayerManager destroyed")

    def sync_with_storage(self) -> int:
        return self.reconciler.tick()

    # ============ Storage ============

    def load_from_storage(self):
        try:
            stored_rooms = self.backend.read(REDIS_ROOMS_KEY)
            if stored_rooms:
                for room in _rooms_adapter.validate_json(stored_rooms):
                    self.rooms.set(room)

            stored_game_states = self.backend.read(REDIS_GAME_STATES_KEY)
            if stored_game_states:
                for state in _game_states_adapter.validate_json(stored_game_states):
                    self.game_states.set(state)
        except Exception as e:
            logger.error(f"Error loading multiplayer data: {e}", exc_info=True)
            return
        logger.info(f"Loaded {len(self.rooms)} rooms and {len(self.game_states)} game states from storage")

    def save_to_storage(self) -> bool:
        rooms = [room.model_dump(mode="json", by_alias=True) for room in self.rooms.get_all()]
        game_states = [state.model_dump(mode="json", by_alias=True) for state in self.game_states.get_all()]
        shared_data = {
            "rooms": rooms,
            "gameStates": game_states,
            "lastSync": int(self.clock().timestamp() * 1000),
        }
        try:
            self.backend.write(REDIS_ROOMS_KEY, json.dumps(rooms))
            self.backend.write(REDIS_GAME_STATES_KEY, json.dumps(game_states))
            # Shared key read by every context's reconciler
            self.backend.write(REDIS_SYNC_KEY, json.dumps(shared_data))
        except Exception as e:
            logger.error(f"Error saving multiplayer data: {e}", exc_info=True)
            return False
        logger.debug(f"Saved {len(rooms)} rooms and {len(game_states)} game states")
        return True

    def _stamp(self, previous: Optional[datetime] = None) -> datetime:
        now = self.clock()
        if previous is not None and now <= previous:
            now = previous + timedelta(microseconds=1)
        return now

    def _new_room_id(self) -> str:
        for attempt in range(ROOM_ID_MAX_ATTEMPTS):
            room_id = self.id_generator()
            if room_id not in self.rooms:
                return room_id
            logger.warning(f"Room id collision detected, regenerating: {room_id}")
        raise RoomIdExhausted(ROOM_ID_MAX_ATTEMPTS)

    def _commit_room(self, room: Room) -> Room:
        self.rooms.set(room)
        self.save_to_storage()
        self.events.publish(ROOM_CHANNEL.format(room_id=room.id), room)
        return room

    # ============ Rooms ============

    def create_room(self, name: str, host: str, game: str, max_players: int = DEFAULT_MAX_PLAYERS) -> Room:
        now = self._stamp()
        room = Room(
            id=self._new_room_id(),
            name=name,
            host=host,
            players=[host],
            game=game,
            status=RoomStatus.WAITING,
            max_players=max_players,
            created_at=now,
            last_updated=now,
        )
        logger.info(f"Created room {room.id} ({name}) hosted by {host} for game {game}")
        return self._commit_room(room)

    def join_room(self, room_id: str, player: str) -> Optional[Room]:
        room = self.rooms.get(room_id)
        if not room:
            logger.debug(f"Join failed: room {room_id} not found")
            return None

        if player in room.players:
            logger.debug(f"Player {player} already in room {room_id}")
            return room

        if len(room.players) >= room.max_players:
            logger.info(f"Join failed: room {room_id} is full ({len(room.players)}/{room.max_players})")
            return None

        updated = room.model_copy(update={
            "players": [*room.players, player],
            "last_updated": self._stamp(room.last_updated),
        })
        logger.info(f"Player {player} joined room {room_id} ({len(updated.players)}/{room.max_players})")
        return self._commit_room(updated)

    def leave_room(self, room_id: str, player: str) -> Optional[Room]:
        room = self.rooms.get(room_id)
        if not room:
            logger.debug(f"Leave failed: room {room_id} not found")
            return None

        remaining = [p for p in room.players if p != player]

        if not remaining:
            self.rooms.delete(room_id)
            self.game_states.delete(room_id)
            self.save_to_storage()
            logger.info(f"Last player {player} left, room {room_id} deleted")
            self.events.publish(ROOMS_CHANNEL, self.rooms.get_all())
            return None

        host = remaining[0] if room.host == player else room.host
        updated = room.model_copy(update={
            "players": remaining,
            "host": host,
            "last_updated": self._stamp(room.last_updated),
        })
        if host != room.host:
            logger.info(f"Host {player} left room {room_id}, host is now {host}")
        else:
            logger.info(f"Player {player} left room {room_id}")
        return self._commit_room(updated)

    def update_room_status(self, room_id: str, status: RoomStatus) -> Optional[Room]:
        room = self.rooms.get(room_id)
        if not room:
            logger.debug(f"Status update failed: room {room_id} not found")
            return None

        # Any status may follow any other; there is no transition check
        updated = room.model_copy(update={
            "status": RoomStatus(status),
            "last_updated": self._stamp(room.last_updated),
        })
        logger.info(f"Room {room_id} status {room.status.value} -> {updated.status.value}")
        return self._commit_room(updated)

    def get_room(self, room_id: str) -> Optional[Room]:
        return self.rooms.get(room_id)

    def get_all_rooms(self) -> List[Room]:
        return self.rooms.get_all()

    # ============ Game state ============

    def update_game_state(self, room_id: str, game_data: Any) -> Optional[GameState]:
        if room_id not in self.rooms:
            logger.debug(f"Game state update failed: room {room_id} not found")
            return None

        previous = self.game_states.get(room_id)
        state = GameState(
            room_id=room_id,
            game_data=game_data,
            last_updated=self._stamp(previous.last_updated if previous else None),
        )
        self.game_states.set(state)
        self.save_to_storage()
        logger.debug(f"Game state updated for room {room_id}")
        self.events.publish(GAME_CHANNEL.format(room_id=room_id), state)
        return state

    def get_game_state(self, room_id: str) -> Optional[GameState]:
        return self.game_states.get(room_id)

    # ============ Events ============

    def subscribe(self, channel: str, callback: Callback):
        self.events.subscribe(channel, callback)

    def unsubscribe(self, channel: str, callback: Callback):
        self.events.unsubscribe(channel, callback)
