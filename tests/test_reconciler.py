import asyncio
import json
from datetime import timedelta

import pytest

from multiplayer.manager import MultiplayerManager
from redis_keys import REDIS_SYNC_KEY
from schemas.rooms import GameState, Room, RoomStatus
from tests.conftest import write_snapshot


def make_room(clock, room_id="K3ZQ8P", offset=0, **overrides):
    stamp = clock.now + timedelta(seconds=offset)
    fields = dict(
        id=room_id, name="Friends", host="alice", players=["alice"], game="Spy",
        status=RoomStatus.WAITING, max_players=4, created_at=clock.now, last_updated=stamp,
    )
    fields.update(overrides)
    return Room(**fields)


@pytest.mark.parametrize("offset, adopted", [(1, True), (0, False), (-1, False)])
def test_room_merge_is_strict_last_write_wins(manager, redis_client, clock, offset, adopted):
    local = manager.rooms.set(make_room(clock))
    remote = make_room(clock, offset=offset, name="Renamed", players=["alice", "bob"])
    write_snapshot(redis_client, rooms=[remote])

    merged = manager.sync_with_storage()

    assert manager.get_room("K3ZQ8P") == (remote if adopted else local)
    assert merged == (1 if adopted else 0)


@pytest.mark.parametrize("offset, adopted", [(1, True), (0, False), (-1, False)])
def test_game_state_merge_is_strict_last_write_wins(manager, redis_client, clock, offset, adopted):
    local = manager.game_states.set(GameState(room_id="K3ZQ8P", game_data={"v": 1}, last_updated=clock.now))
    remote = GameState(room_id="K3ZQ8P", game_data={"v": 2}, last_updated=clock.now + timedelta(seconds=offset))
    write_snapshot(redis_client, game_states=[remote])

    manager.sync_with_storage()

    assert manager.get_game_state("K3ZQ8P") == (remote if adopted else local)


def test_unknown_remote_entities_are_adopted(manager, redis_client, clock):
    room = make_room(clock)
    state = GameState(room_id=room.id, game_data=[1, 2, 3], last_updated=clock.now)
    write_snapshot(redis_client, rooms=[room], game_states=[state])

    assert manager.sync_with_storage() == 2
    assert manager.get_room(room.id) == room
    assert manager.get_game_state(room.id) == state


def test_merge_never_removes_local_entities(manager, redis_client, clock):
    local_only = manager.rooms.set(make_room(clock, room_id="LOCAL1"))
    write_snapshot(redis_client, rooms=[make_room(clock, room_id="REMOTE")])

    manager.sync_with_storage()

    assert manager.get_room("LOCAL1") == local_only
    assert [r.id for r in manager.get_all_rooms()] == ["LOCAL1", "REMOTE"]


def test_tick_notifications(manager, redis_client, clock):
    unchanged = manager.rooms.set(make_room(clock, room_id="SAME00"))
    newer = make_room(clock, room_id="NEWER0", offset=5)
    state = GameState(room_id="NEWER0", game_data={}, last_updated=clock.now)
    write_snapshot(redis_client, rooms=[unchanged, newer], game_states=[state])

    seen = []
    for channel in ["rooms", "room:SAME00", "room:NEWER0", "game:NEWER0"]:
        manager.subscribe(channel, lambda payload, channel=channel: seen.append((channel, payload)))

    manager.sync_with_storage()

    assert seen == [
        ("room:NEWER0", newer),
        ("game:NEWER0", state),
        ("rooms", [unchanged, newer]),
    ]


def test_room_list_is_published_even_without_changes(manager, redis_client, clock):
    room = manager.rooms.set(make_room(clock))
    write_snapshot(redis_client, rooms=[room])
    seen = []
    manager.subscribe("rooms", seen.append)

    assert manager.sync_with_storage() == 0
    assert seen == [[room]]


def test_missing_snapshot_does_nothing(manager):
    seen = []
    manager.subscribe("rooms", seen.append)

    assert manager.sync_with_storage() == 0
    assert seen == []


@pytest.mark.parametrize("text", ["{not json", '["rooms"]', '{"rooms": "K3ZQ8P"}'])
def test_corrupt_snapshot_is_logged_and_skipped(manager, redis_client, clock, text):
    room = manager.rooms.set(make_room(clock))
    redis_client.set(REDIS_SYNC_KEY, text)
    seen = []
    manager.subscribe("rooms", seen.append)

    assert manager.sync_with_storage() == 0
    assert manager.get_room(room.id) == room
    assert seen == []


def test_tick_is_not_reentrant(manager, redis_client, clock):
    write_snapshot(redis_client, rooms=[make_room(clock)])
    nested = []
    manager.subscribe("rooms", lambda rooms: nested.append(manager.sync_with_storage()))

    manager.sync_with_storage()
    assert nested == [0]
    assert manager.reconciler._ticking is False


def test_other_context_changes_arrive_after_a_tick(backend, clock):
    here = MultiplayerManager(backend, clock=clock)
    there = MultiplayerManager(backend, clock=clock)

    room = there.create_room(name="Friends", host="alice", game="Spy", max_players=4)
    assert here.get_room(room.id) is None

    here.sync_with_storage()
    assert here.get_room(room.id) == room

    clock.advance()
    there.join_room(room.id, "bob")
    here.sync_with_storage()
    assert here.get_room(room.id).players == ["alice", "bob"]


def test_concurrent_writers_lose_updates(backend, clock):
    first = MultiplayerManager(backend, clock=clock)
    room = first.create_room(name="Friends", host="alice", game="Spy", max_players=4)
    second = MultiplayerManager(backend, clock=clock)

    clock.advance()
    first.join_room(room.id, "bob")
    clock.advance()
    # second never saw bob join and overwrites the whole snapshot
    second.update_room_status(room.id, RoomStatus.PLAYING)

    first.sync_with_storage()
    synced = first.get_room(room.id)
    assert synced.status == RoomStatus.PLAYING
    assert synced.players == ["alice"]


def test_timer_ticks_until_destroyed(backend, redis_client, clock):
    manager = MultiplayerManager(backend, clock=clock, sync_interval_ms=10)
    write_snapshot(redis_client, rooms=[make_room(clock)])
    ticks = []
    manager.subscribe("rooms", ticks.append)

    async def scenario():
        manager.start()
        manager.start()
        task = manager.reconciler._task
        assert manager.reconciler.running
        await asyncio.sleep(0.1)
        manager.destroy()
        await asyncio.sleep(0.02)
        return task

    task = asyncio.run(scenario())

    assert task.cancelled()
    assert not manager.reconciler.running
    assert len(ticks) >= 1
    assert manager.get_room("K3ZQ8P") is not None


def test_invalid_records_are_skipped_individually(manager, redis_client, clock):
    good = make_room(clock, room_id="GOOD00")
    bad = good.model_dump(mode="json", by_alias=True)
    bad.update(id="BAD000", maxPlayers=25)
    state = GameState(room_id="GOOD00", game_data={"turn": 1}, last_updated=clock.now)
    redis_client.set(REDIS_SYNC_KEY, json.dumps({
        "rooms": [good.model_dump(mode="json", by_alias=True), bad],
        "gameStates": [{"roomId": "GOOD00"}, state.model_dump(mode="json", by_alias=True)],
        "lastSync": 0,
    }))
    seen = []
    manager.subscribe("rooms", seen.append)

    assert manager.sync_with_storage() == 2
    assert manager.get_room("GOOD00") == good
    assert manager.get_room("BAD000") is None
    assert manager.get_game_state("GOOD00") == state
    assert seen == [[good]]


class FlakyBackend:
    """Delegates to a real backend but raises on the chosen read calls"""

    def __init__(self, backend, failing_reads=()):
        self.backend = backend
        self.failing_reads = set(failing_reads)
        self.reads = 0

    def read(self, key):
        self.reads += 1
        if self.reads in self.failing_reads:
            raise RuntimeError("adapter glitch")
        return self.backend.read(key)

    def write(self, key, value):
        self.backend.write(key, value)


def test_unexpected_read_error_on_load_is_logged(backend, clock):
    manager = MultiplayerManager(FlakyBackend(backend, failing_reads={1}), clock=clock)
    assert manager.get_all_rooms() == []


def test_unexpected_read_error_during_tick_is_logged(backend, redis_client, clock):
    write_snapshot(redis_client, rooms=[make_room(clock)])
    # reads 1 and 2 happen while loading, read 3 is the first tick
    manager = MultiplayerManager(FlakyBackend(backend, failing_reads={3}), clock=clock)

    assert manager.sync_with_storage() == 0
    assert manager.sync_with_storage() == 1


def test_timer_survives_a_failing_tick(backend, redis_client, clock):
    write_snapshot(redis_client, rooms=[make_room(clock)])
    manager = MultiplayerManager(FlakyBackend(backend, failing_reads={3}), clock=clock, sync_interval_ms=10)
    ticks = []
    manager.subscribe("rooms", ticks.append)

    async def scenario():
        manager.start()
        await asyncio.sleep(0.2)
        alive = manager.reconciler.running
        manager.destroy()
        return alive

    assert asyncio.run(scenario()) is True
    assert len(ticks) >= 1
    assert manager.get_room("K3ZQ8P") is not None


def test_timer_survives_an_exception_escaping_tick(manager, monkeypatch):
    manager.reconciler.interval_ms = 10
    calls = []

    def exploding_tick():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("merge failed")
        return 0

    monkeypatch.setattr(manager.reconciler, "tick", exploding_tick)

    async def scenario():
        manager.start()
        await asyncio.sleep(0.2)
        alive = manager.reconciler.running
        manager.destroy()
        return alive

    assert asyncio.run(scenario()) is True
    assert len(calls) >= 2
