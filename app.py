from contextlib import asynccontextmanager
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from routers.rooms import rooms_router
from backend import RedisBackend, create_redis_client
from multiplayer.manager import MultiplayerManager
from redis_keys import ROOMS_CHANNEL, ROOM_CHANNEL, GAME_CHANNEL
from typing import List, Optional
import asyncio
from logging_config import get_logger

logger = get_logger(__name__)


def create_app(manager: Optional[MultiplayerManager] = None) -> FastAPI:
    """Build the API around ``manager``, or around a Redis-backed one created at startup."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if app.state.manager is None:
            app.state.manager = MultiplayerManager(RedisBackend(create_redis_client()))
        app.state.manager.start()
        logger.info("Multiplayer manager started")
        try:
            yield
        finally:
            app.state.manager.destroy()

    app = FastAPI(lifespan=lifespan)
    app.state.manager = manager

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)
    app.add_api_websocket_route("/ws/rooms", rooms_websocket)
    app.add_api_websocket_route("/ws/rooms/{room_id}", room_websocket)

    logger.info("FastAPI application initialized")
    return app


async def _wait_for_disconnect(websocket: WebSocket):
    # Clients only listen; anything they send is ignored
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.debug("WebSocket client disconnected")


async def stream_channels(websocket: WebSocket, manager: MultiplayerManager, channels: List[str]):
    """Forward every publish on ``channels`` to the socket as {"channel", "data"} JSON."""
    queue: asyncio.Queue = asyncio.Queue()

    def make_callback(channel: str):
        def callback(payload):
            queue.put_nowait((channel, payload))
        return callback

    subscriptions = [(channel, make_callback(channel)) for channel in channels]
    for channel, callback in subscriptions:
        manager.subscribe(channel, callback)
    logger.debug(f"WebSocket subscribed to channels: {channels}")

    receiver = asyncio.create_task(_wait_for_disconnect(websocket))
    try:
        while True:
            getter = asyncio.create_task(queue.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                getter.cancel()
                break
            channel, payload = getter.result()
            await websocket.send_json({"channel": channel, "data": jsonable_encoder(payload, by_alias=True)})
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error while streaming {channels}: {e}", exc_info=True)
    finally:
        receiver.cancel()
        for channel, callback in subscriptions:
            manager.unsubscribe(channel, callback)
        logger.info(f"WebSocket stream closed for channels: {channels}")


async def rooms_websocket(websocket: WebSocket):
    """Streams the `rooms` channel, starting with the current room list."""
    manager: MultiplayerManager = websocket.app.state.manager
    await websocket.accept()
    await websocket.send_json({"channel": ROOMS_CHANNEL, "data": jsonable_encoder(manager.get_all_rooms(), by_alias=True)})
    await stream_channels(websocket, manager, [ROOMS_CHANNEL])


async def room_websocket(websocket: WebSocket, room_id: str):
    """Streams `room:<id>` and `game:<id>`, starting with the current room and game state."""
    manager: MultiplayerManager = websocket.app.state.manager
    room_id = room_id.upper()
    logger.info(f"WebSocket connection attempt for room: {room_id}")

    room = manager.get_room(room_id)
    if not room:
        logger.info(f"WebSocket connection rejected: Room {room_id} not found")
        await websocket.close(code=1008, reason="Room not found")
        return

    await websocket.accept()
    room_channel = ROOM_CHANNEL.format(room_id=room_id)
    game_channel = GAME_CHANNEL.format(room_id=room_id)
    await websocket.send_json({"channel": room_channel, "data": jsonable_encoder(room, by_alias=True)})
    state = manager.get_game_state(room_id)
    if state:
        await websocket.send_json({"channel": game_channel, "data": jsonable_encoder(state, by_alias=True)})

    await stream_channels(websocket, manager, [room_channel, game_channel])
