from fastapi import APIRouter, HTTPException, Query, Request

from errors import RoomCapacityExceeded
from schemas.rooms import CreateRoomResponse, RoomExistsResponse
from logging_config import get_logger

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


@rooms_router.api_route("/create", methods=["GET", "POST"], response_model=CreateRoomResponse, response_model_by_alias=True)
async def create_room(request: Request):
    # Response 200: { "roomID": "482913" }
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    registry = request.app.state.room_registry

    try:
        room_id = registry.create_room()
    except RoomCapacityExceeded as e:
        logger.error(f"Error creating room: {e}")
        raise HTTPException(status_code=503, detail="No room identifiers available")
    except Exception as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Failed to create room")

    return CreateRoomResponse(room_id=room_id)


@rooms_router.get("/exists", response_model=RoomExistsResponse)
async def room_exists(request: Request, room: str = Query(..., description="Six-digit room identifier")):
    registry = request.app.state.room_registry
    exists = registry.room_exists(room)
    logger.debug(f"Existence probe for room {room}: {exists}")
    return RoomExistsResponse(exists=exists)
