import json
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from backend import RedisBackend
from multiplayer.manager import MultiplayerManager
from redis_keys import REDIS_SYNC_KEY


class FakeClock:
    """Manually advanced UTC clock"""

    def __init__(self, start=datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds=1):
        self.now += timedelta(seconds=seconds)
        return self.now


def write_snapshot(redis_client, rooms=(), game_states=()):
    """Store a shared snapshot as another context would have written it."""
    redis_client.set(REDIS_SYNC_KEY, json.dumps({
        "rooms": [room.model_dump(mode="json", by_alias=True) for room in rooms],
        "gameStates": [state.model_dump(mode="json", by_alias=True) for state in game_states],
        "lastSync": 0,
    }))


@pytest.fixture()
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture()
def backend(redis_client):
    return RedisBackend(redis_client)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def manager(backend, clock):
    manager = MultiplayerManager(backend, clock=clock)
    yield manager
    manager.destroy()
