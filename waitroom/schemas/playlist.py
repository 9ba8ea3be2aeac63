from pydantic import BaseModel, Field

class PlaylistIn(BaseModel):
    playlistString: str = Field(..., min_length=1)

class CursorIn(BaseModel):
    currentPlaylistIndex: int = Field(..., ge=0)
    currentFileIndex: int = Field(..., ge=0)
