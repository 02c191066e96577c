"""Room registry: identifier allocation, lookup and idle reaping."""
import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from constants import ROOM_ID_LENGTH, ROOM_IDLE_SECONDS, ROOM_ID_MAX_ATTEMPTS
from errors import MalformedIdentifier, RoomCapacityExceeded, RoomNotFound
from hub import RoomHub
from logging_config import get_logger

logger = get_logger(__name__)

ID_SPACE = 10 ** ROOM_ID_LENGTH


def is_valid_room_id(room_id) -> bool:
    """Exactly six ASCII digits; leading zeros allowed."""
    return (
        isinstance(room_id, str)
        and len(room_id) == ROOM_ID_LENGTH
        and room_id.isascii()
        and room_id.isdigit()
    )


def validate_room_id(room_id) -> str:
    if not is_valid_room_id(room_id):
        raise MalformedIdentifier(f"Room identifier must be {ROOM_ID_LENGTH} digits, got {room_id!r}")
    return room_id


@dataclass
class Room:
    room_id: str
    hub: RoomHub
    created_at: float
    # Monotonic time the room last had zero sessions; None while occupied
    idle_since: Optional[float] = None

    @property
    def snapshot(self) -> str:
        return self.hub.snapshot

    @property
    def session_count(self) -> int:
        return self.hub.member_count


@dataclass
class RoomRegistry:
    backend: object
    idle_seconds: float = ROOM_IDLE_SECONDS
    max_attempts: int = ROOM_ID_MAX_ATTEMPTS
    rng: random.Random = field(default_factory=random.SystemRandom)
    clock: Callable[[], float] = time.monotonic
    rooms: Dict[str, Room] = field(default_factory=dict)

    def generate_room_id(self) -> str:
        return f"{self.rng.randrange(ID_SPACE):0{ROOM_ID_LENGTH}d}"

    def create_room(self) -> str:
        """Allocate a fresh identifier and open an empty room under it.

        Collisions with open rooms (here or, with a shared backend, on
        another instance) are retried with a new draw.
        """
        for attempt in range(1, self.max_attempts + 1):
            room_id = self.generate_room_id()
            if room_id in self.rooms or not self.backend.reserve(room_id):
                logger.debug(f"Identifier collision on {room_id} (attempt {attempt})")
                continue
            now = self.clock()
            self.rooms[room_id] = Room(
                room_id=room_id,
                hub=RoomHub(room_id, on_empty=self._mark_idle),
                created_at=now,
                idle_since=now,
            )
            logger.info(f"Room {room_id} created ({len(self.rooms)} open)")
            return room_id

        logger.error(f"Could not allocate a room identifier after {self.max_attempts} attempts")
        raise RoomCapacityExceeded(f"No free room identifier after {self.max_attempts} attempts")

    def lookup_room(self, room_id) -> Room:
        """Return the open room for `room_id` and restart its idle clock."""
        validate_room_id(room_id)
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} does not exist")
        if room.idle_since is not None:
            room.idle_since = self.clock()
        return room

    def room_exists(self, room_id) -> bool:
        return is_valid_room_id(room_id) and room_id in self.rooms

    def _mark_idle(self, hub: RoomHub) -> None:
        room = self.rooms.get(hub.room_id)
        if room is not None and room.hub is hub:
            room.idle_since = self.clock()
            logger.info(f"Room {hub.room_id} has no sessions (reapable after {self.idle_seconds}s)")

    def reap(self, room_id: str) -> bool:
        """Remove the room if it is empty and has been idle past the grace period."""
        room = self.rooms.get(room_id)
        if room is None:
            return False
        if room.hub.member_count > 0:
            room.idle_since = None
            return False
        if room.idle_since is None:
            room.idle_since = self.clock()
            return False
        if self.clock() - room.idle_since < self.idle_seconds:
            return False

        del self.rooms[room_id]
        self.backend.release(room_id)
        logger.info(f"Room {room_id} reaped after {self.idle_seconds}s without sessions")
        return True

    def reap_idle(self) -> List[str]:
        reaped = [room_id for room_id in list(self.rooms) if self.reap(room_id)]
        for room_id in self.rooms:
            self.backend.refresh(room_id)
        return reaped


async def run_reaper(registry: RoomRegistry, interval: float):
    """Background sweep removing idle rooms every `interval` seconds."""
    logger.info(f"Starting room reaper (interval={interval}s, idle window={registry.idle_seconds}s)")
    try:
        while True:
            await asyncio.sleep(interval)
            try:
                reaped = registry.reap_idle()
                if reaped:
                    logger.info(f"Reaped {len(reaped)} idle rooms: {', '.join(reaped)}")
            except Exception as e:
                logger.error(f"Error during room reaping: {e}", exc_info=True)
    except asyncio.CancelledError:
        logger.info("Room reaper cancelled")
        raise
