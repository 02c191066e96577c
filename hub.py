"""
Per-room broadcast fan-out.
"""
import asyncio
from typing import Callable, Dict, Optional

from logging_config import get_logger
from protocol import encode_text_update

logger = get_logger(__name__)


class RoomHub:
    """Owns one room's document snapshot and its member sessions.

    Members are any objects exposing `session_id` and a non-blocking
    `deliver(frame)`. All mutations run under one lock, so updates are
    applied and fanned out in the order they reach the hub.
    """

    def __init__(self, room_id: str, on_empty: Optional[Callable[["RoomHub"], None]] = None):
        self.room_id = room_id
        self.snapshot = ""
        self._members: Dict[str, object] = {}
        self._lock = asyncio.Lock()
        self._on_empty = on_empty

    @property
    def member_count(self) -> int:
        return len(self._members)

    def __contains__(self, session) -> bool:
        return session.session_id in self._members

    async def join(self, session) -> None:
        """Register `session` and hand it the current snapshot."""
        async with self._lock:
            self._members[session.session_id] = session
            session.deliver(encode_text_update(self.snapshot))
        logger.info(f"Session {session.session_id} joined room {self.room_id} (members: {self.member_count})")

    async def leave(self, session) -> None:
        async with self._lock:
            removed = self._members.pop(session.session_id, None)
            remaining = len(self._members)
        if removed is None:
            return
        logger.info(f"Session {session.session_id} left room {self.room_id} (members: {remaining})")
        if remaining == 0 and self._on_empty is not None:
            self._on_empty(self)

    async def apply_update(self, source, content: str) -> int:
        """Accept `content` as the new snapshot and relay it to every other member.

        Returns the number of sessions the update was delivered to. The
        source receives nothing back.
        """
        frame = encode_text_update(content)
        async with self._lock:
            self.snapshot = content
            targets = [s for sid, s in self._members.items() if sid != source.session_id]
            for session in targets:
                session.deliver(frame)
        logger.debug(f"Broadcast update from {source.session_id} to {len(targets)} sessions in room {self.room_id}")
        return len(targets)
