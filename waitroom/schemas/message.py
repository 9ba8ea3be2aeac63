from pydantic import BaseModel

class MessageIn(BaseModel):
    text: str = ""
    visible: bool = True

class MessageOut(BaseModel):
    text: str = ""
    visible: bool = False
    lastUpdated: str | None = None
