from datetime import datetime
from pydantic import BaseModel, Field

class RoomIn(BaseModel):
    label: str | None = None
    number: int = Field(default=0, ge=0, le=999)
    visible: bool = False

class StatusMessageIn(BaseModel):
    text: str = ""
    visible: bool = True
    preset: str | None = None

class StatusIn(BaseModel):
    mode: str = "rooms"
    room1: RoomIn | None = None
    room2: RoomIn | None = None
    statusMessage: StatusMessageIn | None = None

class LabelHistoryIn(BaseModel):
    history: list[str]

class StatusLogOut(BaseModel):
    id: str
    mode: str
    room1_label: str | None = None
    room1_number: int
    room1_visible: bool
    room2_label: str | None = None
    room2_number: int
    room2_visible: bool
    message_text: str | None = None
    client_ip: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True
