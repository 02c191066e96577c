"""
Server-side state machine for one real-time connection.
"""
import asyncio
import uuid
from enum import Enum
from typing import Optional

from fastapi import WebSocket, WebSocketDisconnect

from constants import SESSION_OUTBOX_SIZE
from errors import MalformedIdentifier, MalformedMessage, RoomNotFound, TransportFailure
from hub import RoomHub
from logging_config import get_logger
from protocol import decode_frame
from registry import RoomRegistry

logger = get_logger(__name__)

# Policy violation: sent instead of accepting when the room cannot be joined
CLOSE_ROOM_NOT_FOUND = 1008


class SessionState(str, Enum):
    CONNECTING = "connecting"
    VALIDATING = "validating"
    REJECTED = "rejected"
    OPEN = "open"
    CLOSING = "closing"


class ClientSession:
    """One participant's connection to a room.

    Connecting -> Validating -> Rejected | Open -> Closing. Rejected and
    Closing are terminal. Outgoing frames go through a bounded queue drained
    by a writer task, so a slow client never stalls the room's hub.
    """

    def __init__(self, websocket: WebSocket, registry: RoomRegistry, outbox_size: int = SESSION_OUTBOX_SIZE):
        self.session_id = str(uuid.uuid4())
        self.websocket = websocket
        self.registry = registry
        self.state = SessionState.CONNECTING
        self.room_id: Optional[str] = None
        self.alive = False
        # Non-owning: the hub owns its members, the session only reports leave
        self.hub: Optional[RoomHub] = None
        self._outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._writer: Optional[asyncio.Task] = None
        self._closer: Optional[asyncio.Future] = None

    async def run(self, room_id: Optional[str]) -> None:
        """Drive the connection from handshake to teardown."""
        if not await self._validate(room_id):
            return

        await self.websocket.accept()
        self.state = SessionState.OPEN
        self.alive = True
        logger.info(f"Session {self.session_id} accepted for room {self.room_id}")

        self._writer = asyncio.create_task(self._write_loop())
        try:
            await self.hub.join(self)
            await self._read_loop()
        except Exception as e:
            logger.error(f"Session {self.session_id} in room {self.room_id} failed: {e}", exc_info=True)
        finally:
            await self._close()

    async def _validate(self, room_id: Optional[str]) -> bool:
        self.state = SessionState.VALIDATING
        try:
            room = self.registry.lookup_room(room_id)
        except (MalformedIdentifier, RoomNotFound) as e:
            self.state = SessionState.REJECTED
            logger.info(f"WebSocket connection rejected: {e}")
            await self.websocket.close(code=CLOSE_ROOM_NOT_FOUND)
            return False
        self.room_id = room.room_id
        self.hub = room.hub
        return True

    async def _read_loop(self) -> None:
        message_count = 0
        while self.alive:
            message = await self.websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"WebSocket disconnected for session {self.session_id} in room {self.room_id}")
                break

            raw = message.get("text")
            if raw is None:
                raw = message.get("bytes") or b""
            message_count += 1
            logger.debug(f"Received frame #{message_count} from session {self.session_id} in room {self.room_id}")

            try:
                update = decode_frame(raw)
            except MalformedMessage as e:
                logger.warning(f"Dropped malformed frame from session {self.session_id}: {e}")
                continue
            await self.hub.apply_update(self, update.content)

    def deliver(self, frame: str) -> None:
        """Queue a frame for this session; never blocks the caller."""
        if not self.alive:
            return
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for session {self.session_id} in room {self.room_id}, disconnecting")
            self._fail(TransportFailure("outbox overflow"))

    async def _write_loop(self) -> None:
        try:
            while True:
                frame = await self._outbox.get()
                await self.websocket.send_text(frame)
        except asyncio.CancelledError:
            raise
        except (WebSocketDisconnect, RuntimeError, OSError) as e:
            self._fail(TransportFailure(str(e)))
        except Exception as e:
            logger.error(f"Writer for session {self.session_id} failed: {e}", exc_info=True)
            self._fail(TransportFailure(str(e)))

    def _fail(self, error: TransportFailure) -> None:
        if not self.alive:
            return
        self.alive = False
        logger.info(f"Session {self.session_id} in room {self.room_id} lost its transport: {error}")
        self._closer = asyncio.ensure_future(self._close_socket())

    async def _close_socket(self) -> None:
        try:
            await self.websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket: {e}")

    async def _close(self) -> None:
        self.state = SessionState.CLOSING
        self.alive = False
        if self.hub is not None:
            await self.hub.leave(self)
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
        if self._closer is not None:
            await self._closer
        else:
            await self._close_socket()
        logger.info(f"Session {self.session_id} closed (room {self.room_id})")
