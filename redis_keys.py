REDIS_ROOMS_KEY = "addaGameRooms" # json array of room records
REDIS_GAME_STATES_KEY = "addaGameStates" # json array of game state records
REDIS_SYNC_KEY = "addaMultiplayerSync" # combined snapshot read by the reconciler

ROOMS_CHANNEL = "rooms" # payload: full room list
ROOM_CHANNEL = "room:{room_id}" # payload: single room
GAME_CHANNEL = "game:{room_id}" # payload: single game state

# **Example `addaMultiplayerSync` value**
# {
#   "rooms": [{"id": "K3ZQ8P", "name": "Friends", "host": "alice", "players": ["alice"],
#              "game": "Spy", "status": "waiting", "maxPlayers": 4,
#              "createdAt": "...", "lastUpdated": "..."}],
#   "gameStates": [{"roomId": "K3ZQ8P", "gameData": {...}, "lastUpdated": "..."}],
#   "lastSync": 1760700000000
# }
