import random

from constants import ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH, ROOM_CODE_PREFIX


def canonical_room_id(room_id: str) -> str:
    """Room ids are case-insensitive; every entry point upper-cases them before touching a store."""
    return (room_id or "").strip().upper()


class RoomCodeGenerator:
    def __init__(self, rng: random.Random = None):
        self._rng = rng or random.SystemRandom()

    def generate(self) -> str:
        suffix = "".join(self._rng.choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))
        return f"{ROOM_CODE_PREFIX}{suffix}"
