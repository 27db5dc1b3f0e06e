import random
import string
from constants import ROOM_ID_LENGTH

ROOM_ID_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_id(length: int = ROOM_ID_LENGTH) -> str:
    """Random uppercase alphanumeric room id, e.g. ``K3ZQ8P``. Uniqueness is the caller's job."""
    return ''.join(random.choices(ROOM_ID_ALPHABET, k=length))
