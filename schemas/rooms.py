from pydantic import BaseModel, ConfigDict, Field


class CreateRoomResponse(BaseModel):
    # Existing clients read the camel-cased `roomID` key
    model_config = ConfigDict(populate_by_name=True)

    room_id: str = Field(alias="roomID", pattern=r"^[0-9]{6}$")


class RoomExistsResponse(BaseModel):
    exists: bool


class HealthResponse(BaseModel):
    status: str
    rooms: int
