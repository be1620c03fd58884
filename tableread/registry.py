"""Process-wide room registry: code generation, lookup and teardown."""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Dict, Iterator, Optional

from .constants import CODE_ALPHABET, CODE_LENGTH
from .room import Room
from .schemas import Participant, Script

logger = logging.getLogger(__name__)


def normalise_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class RoomRegistry:
    """Owns every live :class:`Room`, keyed by its short code."""

    def __init__(self, auto_advance_delay: float = 4.0, rng: Optional[random.Random] = None):
        self.rooms: Dict[str, Room] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self.auto_advance_delay = auto_advance_delay
        self._rng = rng or random.Random()

    def __len__(self) -> int:
        return len(self.rooms)

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalise_code(code) in self.rooms

    def __iter__(self) -> Iterator[Room]:
        return iter(list(self.rooms.values()))

    def generate_code(self) -> str:
        return "".join(self._rng.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

    def make_unique_code(self) -> str:
        # Codes are only unique among live rooms; a closed room's code can come back.
        code = self.generate_code()
        while code in self.rooms:
            code = self.generate_code()
        return code

    def create_room(self, host: Participant, script: Script) -> Room:
        code = self.make_unique_code()
        room = Room(code, host, script)
        self.rooms[code] = room
        logger.info("Room %s created by %s (script: %s)", code, host.name, script.title)
        return room

    def lock(self, code: Optional[str]) -> asyncio.Lock:
        """Serializes every mutation of one room, timers included."""
        code = normalise_code(code)
        if code not in self._locks:
            self._locks[code] = asyncio.Lock()
        return self._locks[code]

    def get(self, code: Optional[str]) -> Optional[Room]:
        return self.rooms.get(normalise_code(code))

    def remove(self, code: Optional[str]) -> None:
        code = normalise_code(code)
        room = self.rooms.pop(code, None)
        self._locks.pop(code, None)
        if room is not None:
            room.cancel_auto_advance()
            logger.debug("Room %s removed from registry", room.code)


__all__ = ["RoomRegistry", "normalise_code"]
