"""
Participant-side synchronization: room creation, the SyncClient state
machine and a websockets transport that drives it.
"""
import asyncio
from contextlib import contextmanager
from enum import Enum
from typing import Callable, Optional
from urllib.parse import urlencode

import requests
import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake

from constants import BACKEND_URL, CREATE_TIMEOUT_SECONDS
from errors import CreationFailure, MalformedIdentifier, MalformedMessage
from logging_config import get_logger
from protocol import decode_frame, encode_text_update
from registry import is_valid_room_id, validate_room_id

logger = get_logger(__name__)


def ws_base_from_http(base_url: str) -> str:
    base_url = base_url.rstrip("/")
    # Replace http/https with ws/wss
    return base_url.replace("http://", "ws://").replace("https://", "wss://")


def create_room(base_url: str = BACKEND_URL, timeout: float = CREATE_TIMEOUT_SECONDS) -> str:
    """Ask the server for a new room and return its identifier.

    Raises CreationFailure unless the response carries a six-digit `roomID`.
    """
    url = f"{base_url.rstrip('/')}/create"
    try:
        response = requests.post(url, timeout=timeout)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.error(f"Failed to create room at {url}: {e}")
        raise CreationFailure(f"Room creation request failed: {e}") from e
    except ValueError as e:
        raise CreationFailure(f"Room creation returned a non-JSON body: {e}") from e

    room_id = data.get("roomID") if isinstance(data, dict) else None
    if not is_valid_room_id(room_id):
        logger.error(f"Room creation returned no usable identifier: {data!r}")
        raise CreationFailure("No room ID returned")
    logger.info(f"Created room {room_id}")
    return room_id


class ClientState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    NOT_FOUND = "not_found"


class SyncClient:
    """Local copy of a room's document plus the connection lifecycle.

    `edit` is the keystroke path and `handle_message` the network path; both
    end in `_set_text`, which notifies `on_change` and transmits the new
    text. Remote updates are applied with transmission suppressed, and the
    suppression is lifted before `handle_message` returns, so the next
    keystroke is sent normally.
    """

    def __init__(
        self,
        send: Optional[Callable[[str], None]] = None,
        on_change: Optional[Callable[[str], None]] = None,
        on_state: Optional[Callable[[ClientState], None]] = None,
    ):
        self.send = send
        self.on_change = on_change
        self.on_state = on_state
        self.state = ClientState.IDLE
        self.room_id: Optional[str] = None
        self.text = ""
        self._applying_remote = False

    def _transition(self, state: ClientState) -> None:
        if state is self.state:
            return
        logger.debug(f"Client for room {self.room_id}: {self.state.value} -> {state.value}")
        self.state = state
        if self.on_state is not None:
            self.on_state(state)

    def connect(self, room_id: str) -> None:
        """Start a connection attempt; a malformed identifier leaves the client idle."""
        try:
            validate_room_id(room_id)
        except MalformedIdentifier:
            logger.warning(f"Refusing to connect to malformed room identifier {room_id!r}")
            raise
        # Local text survives a reconnect until the room's snapshot replaces it
        self.room_id = room_id
        self._transition(ClientState.CONNECTING)

    def handle_open(self) -> None:
        if self.state is ClientState.CONNECTING:
            self._transition(ClientState.CONNECTED)

    def handle_close(self) -> None:
        """Transport closed: before open means the room does not exist."""
        if self.state is ClientState.CONNECTING:
            logger.info(f"Room {self.room_id} not found")
            self._transition(ClientState.NOT_FOUND)
        elif self.state is ClientState.CONNECTED:
            logger.info(f"Disconnected from room {self.room_id}")
            self._transition(ClientState.DISCONNECTED)

    def handle_message(self, raw) -> None:
        if self.state is not ClientState.CONNECTED:
            return
        try:
            update = decode_frame(raw)
        except MalformedMessage as e:
            logger.error(f"Error parsing message: {e}")
            return
        with self._remote_update():
            self._set_text(update.content)

    def edit(self, text: str) -> None:
        """Apply a local edit; it is transmitted while connected."""
        self._set_text(text)

    @contextmanager
    def _remote_update(self):
        self._applying_remote = True
        try:
            yield
        finally:
            self._applying_remote = False

    def _set_text(self, text: str) -> None:
        self.text = text
        if self.on_change is not None:
            self.on_change(text)
        if self._applying_remote or self.state is not ClientState.CONNECTED or self.send is None:
            return
        self.send(encode_text_update(text))


class RoomConnection:
    """Runs a SyncClient over a websockets connection to `/ws?room=<id>`."""

    def __init__(self, client: SyncClient, ws_base_url: Optional[str] = None):
        self.client = client
        self.ws_base_url = ws_base_url or ws_base_from_http(BACKEND_URL)
        self._outgoing: asyncio.Queue = asyncio.Queue()
        self._websocket = None
        self._closing = False

    def url_for(self, room_id: str) -> str:
        return f"{self.ws_base_url.rstrip('/')}/ws?{urlencode({'room': room_id})}"

    def _enqueue(self, frame: str) -> None:
        self._outgoing.put_nowait(frame)

    async def run(self, room_id: str) -> ClientState:
        """Connect, exchange frames until the transport closes, return the final state."""
        # Frames left over from a previous room must never reach this one
        self._outgoing = asyncio.Queue()
        self._closing = False
        self.client.connect(room_id)
        self.client.send = self._enqueue
        url = self.url_for(room_id)
        writer = None
        try:
            async with websockets.connect(url) as websocket:
                self._websocket = websocket
                logger.info(f"Connected to {url}")
                self.client.handle_open()
                if self._closing:
                    await websocket.close()
                writer = asyncio.create_task(self._write_loop(websocket))
                async for raw in websocket:
                    self.client.handle_message(raw)
        except InvalidHandshake as e:
            logger.info(f"Handshake refused for room {room_id}: {e}")
        except ConnectionClosed as e:
            logger.info(f"Connection to room {room_id} closed: {e}")
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(f"WebSocket error for room {room_id}: {e}")
        finally:
            if writer is not None:
                writer.cancel()
                try:
                    await writer
                except asyncio.CancelledError:
                    pass
            self._websocket = None
            self.client.send = None
            self.client.handle_close()
        return self.client.state

    async def _write_loop(self, websocket) -> None:
        try:
            while True:
                frame = await self._outgoing.get()
                await websocket.send(frame)
        except ConnectionClosed as e:
            logger.info(f"Send failed, connection closed: {e}")

    async def close(self) -> None:
        """Leave the room: close the transport without reconnecting."""
        self._closing = True
        if self._websocket is not None:
            await self._websocket.close()
