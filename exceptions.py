"""
Exceptions raised by the multiplayer core.

Only adapter-level faults are exceptions. Missing rooms, full rooms and repeated
joins are ordinary results (None or the unchanged room) and never raise.
"""


class MultiplayerException(Exception):
    """Base class for every multiplayer error"""
    pass


class PersistenceError(MultiplayerException):
    """Reading or writing the external store failed, or its content is corrupt"""
    def __init__(self, key, reason):
        self.key = key
        self.reason = reason
        super().__init__(f"Persistence failure on key {key}: {reason}")


class RoomIdExhausted(MultiplayerException):
    """Every generated room id collided with an existing room"""
    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"Could not generate a unique room id after {attempts} attempts")
