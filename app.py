import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware

from backend import build_room_backend
from constants import LOG_FILE, LOG_LEVEL, REAP_INTERVAL_SECONDS, ROOM_BACKEND, ROOM_IDLE_SECONDS
from logging_config import get_logger, setup_logging
from registry import RoomRegistry, run_reaper
from routers.rooms import rooms_router
from schemas.rooms import HealthResponse
from session import ClientSession

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)


def build_registry() -> RoomRegistry:
    reservation_ttl = None
    if REAP_INTERVAL_SECONDS > 0:
        # Reservations outlive a crashed instance by at most a few sweeps
        reservation_ttl = int(REAP_INTERVAL_SECONDS * 3)
    backend = build_room_backend(ROOM_BACKEND, reservation_ttl=reservation_ttl)
    return RoomRegistry(backend=backend, idle_seconds=ROOM_IDLE_SECONDS)


def create_app(registry: Optional[RoomRegistry] = None, reap_interval: float = REAP_INTERVAL_SECONDS) -> FastAPI:
    registry = registry if registry is not None else build_registry()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        reaper = None
        if reap_interval > 0:
            reaper = asyncio.create_task(run_reaper(registry, reap_interval))
        try:
            yield
        finally:
            if reaper is not None:
                reaper.cancel()
                try:
                    await reaper
                except asyncio.CancelledError:
                    pass

    app = FastAPI(title="Room Sync", lifespan=lifespan)
    app.state.room_registry = registry

    # Configure CORS to allow all origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(rooms_router)

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        return HealthResponse(status="ok", rooms=len(registry.rooms))

    @app.websocket("/ws")
    async def websocket_endpoint(websocket: WebSocket, room: Optional[str] = None):
        """Real-time channel for one participant.

        Query parameters:
        - room: six-digit identifier of an open room. Unknown or malformed
          identifiers are refused before the handshake completes.
        """
        logger.info(f"WebSocket connection attempt for room: {room}")
        session = ClientSession(websocket, registry)
        await session.run(room)

    logger.info("FastAPI application initialized")
    return app


app = create_app()
