"""
Timer-driven reconciliation between the in-memory repositories and the shared
snapshot key.

Each tick adopts every remote room or game state that is new locally or carries
a strictly newer ``lastUpdated``, then announces the full room list. Nothing is
ever removed here; deletions only travel through a manager's own write-through.
"""
import asyncio
import json
from typing import Any, List, Optional, Tuple
from pydantic import TypeAdapter, ValidationError

from backend import RedisBackend
from constants import SYNC_INTERVAL_MS
from exceptions import PersistenceError
from logging_config import get_logger
from multiplayer.events import EventChannelRegistry
from multiplayer.state_repository import StateRepository
from redis_keys import REDIS_SYNC_KEY, ROOMS_CHANNEL, ROOM_CHANNEL, GAME_CHANNEL
from schemas.rooms import GameState, Room, SyncSnapshot

logger = get_logger(__name__)

_room_adapter = TypeAdapter(Room)
_game_state_adapter = TypeAdapter(GameState)


class Reconciler:
    def __init__(
        self,
        backend: RedisBackend,
        rooms: StateRepository[Room],
        game_states: StateRepository[GameState],
        events: EventChannelRegistry,
        interval_ms: int = SYNC_INTERVAL_MS,
    ):
        self.backend = backend
        self.rooms = rooms
        self.game_states = game_states
        self.events = events
        self.interval_ms = interval_ms
        self._task: Optional[asyncio.Task] = None
        self._ticking = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self):
        """Schedule the tick loop on the running event loop."""
        if self.running:
            logger.debug("Reconciler already running")
            return
        self._task = asyncio.get_running_loop().create_task(self._run())
        logger.info(f"Reconciler started with interval {self.interval_ms}ms")

    def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        logger.info("Reconciler stopped")

    async def _run(self):
        interval = self.interval_ms / 1000
        try:
            while True:
                await asyncio.sleep(interval)
                try:
                    self.tick()
                except Exception as e:
                    logger.error(f"Unexpected error during reconciler tick: {e}", exc_info=True)
        except asyncio.CancelledError:
            logger.debug("Reconciler task cancelled")
            raise

    def read_snapshot(self) -> Optional[SyncSnapshot]:
        text = self.backend.read(REDIS_SYNC_KEY)
        if text is None:
            return None
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise PersistenceError(REDIS_SYNC_KEY, f"corrupt snapshot: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(REDIS_SYNC_KEY, "corrupt snapshot: expected an object")

        # Records are validated one by one so a bad entry only drops itself
        rooms = self._valid_records(data.get("rooms"), _room_adapter, "room")
        game_states = self._valid_records(data.get("gameStates"), _game_state_adapter, "game state")
        last_sync = data.get("lastSync")
        return SyncSnapshot.model_construct(
            rooms=rooms,
            game_states=game_states,
            last_sync=last_sync if isinstance(last_sync, int) else 0,
        )

    @staticmethod
    def _valid_records(records, adapter: TypeAdapter, kind: str) -> list:
        if records is None:
            return []
        if not isinstance(records, list):
            raise PersistenceError(REDIS_SYNC_KEY, f"corrupt snapshot: {kind} records are not a list")
        valid = []
        for index, record in enumerate(records):
            try:
                valid.append(adapter.validate_python(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid {kind} record #{index} in shared snapshot: {e}")
        return valid

    def tick(self) -> int:
        """Run one merge pass. Returns the number of local entities replaced."""
        if self._ticking:
            logger.warning("Reconciler tick requested while a tick is in progress, skipping")
            return 0
        self._ticking = True
        try:
            return self._tick()
        finally:
            self._ticking = False

    def _tick(self) -> int:
        try:
            snapshot = self.read_snapshot()
        except Exception as e:
            logger.error(f"Error syncing multiplayer data: {e}", exc_info=True)
            return 0
        if snapshot is None:
            logger.debug("No shared snapshot found, nothing to sync")
            return 0

        notifications: List[Tuple[str, Any]] = []

        for room in snapshot.rooms:
            existing = self.rooms.get(room.id)
            if existing is None or room.last_updated > existing.last_updated:
                self.rooms.set(room)
                notifications.append((ROOM_CHANNEL.format(room_id=room.id), room))

        for state in snapshot.game_states:
            existing = self.game_states.get(state.room_id)
            if existing is None or state.last_updated > existing.last_updated:
                self.game_states.set(state)
                notifications.append((GAME_CHANNEL.format(room_id=state.room_id), state))

        changed = len(notifications)
        notifications.append((ROOMS_CHANNEL, self.rooms.get_all()))

        if changed:
            logger.info(f"Merged {changed} newer entities from shared snapshot")
        for channel, payload in notifications:
            self.events.publish(channel, payload)
        return changed
