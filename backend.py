import json
import socket
from datetime import datetime
from typing import Optional, Set

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_BACKEND
from redis_keys import REDIS_META_KEY
from logging_config import get_logger

logger = get_logger(__name__)


class InMemoryRoomBackend:
    """Identifier reservations held by this process only."""

    def __init__(self):
        self._reserved: Set[str] = set()

    def reserve(self, room_id: str) -> bool:
        if room_id in self._reserved:
            logger.debug(f"Identifier {room_id} already reserved")
            return False
        self._reserved.add(room_id)
        return True

    def release(self, room_id: str) -> None:
        self._reserved.discard(room_id)

    def refresh(self, room_id: str) -> None:
        pass

    def is_reserved(self, room_id: str) -> bool:
        return room_id in self._reserved


class RedisRoomBackend:
    """Identifier reservations shared by every instance behind one Redis.

    A reservation is a `room:meta:{id}` key written with SET NX, so two
    instances racing on the same draw cannot both win it.
    """

    def __init__(self, redis_client: redis.Redis, ttl: Optional[int] = None):
        self.redis_client = redis_client
        self.ttl = ttl
        logger.info(f"Initializing RedisRoomBackend (reservation ttl={ttl})")

    def reserve(self, room_id: str) -> bool:
        key = REDIS_META_KEY.format(slug=room_id)
        meta = {
            "room_id": room_id,
            "created_at": datetime.now().isoformat(),
            "instance": socket.gethostname(),
        }
        reserved = self.redis_client.set(key, json.dumps(meta), nx=True, ex=self.ttl)
        if not reserved:
            logger.debug(f"Identifier {room_id} already reserved in Redis")
            return False
        logger.debug(f"Reserved identifier {room_id} with key: {key}")
        return True

    def release(self, room_id: str) -> None:
        key = REDIS_META_KEY.format(slug=room_id)
        deleted = self.redis_client.delete(key)
        logger.debug(f"Released identifier {room_id}: deleted={deleted}")

    def refresh(self, room_id: str) -> None:
        """Extend the reservation while the room is still open here."""
        if self.ttl:
            self.redis_client.expire(REDIS_META_KEY.format(slug=room_id), self.ttl)

    def is_reserved(self, room_id: str) -> bool:
        return bool(self.redis_client.exists(REDIS_META_KEY.format(slug=room_id)))


def connect_redis() -> redis.Redis:
    try:
        redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        # Test connection
        redis_client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
    except Exception as e:
        logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
        raise
    return redis_client


def build_room_backend(kind: str = ROOM_BACKEND, reservation_ttl: Optional[int] = None):
    if kind == "redis":
        return RedisRoomBackend(connect_redis(), ttl=reservation_ttl)
    if kind != "memory":
        raise ValueError(f"Unknown ROOM_BACKEND: {kind!r}")
    return InMemoryRoomBackend()
