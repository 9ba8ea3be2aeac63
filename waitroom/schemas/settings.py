from typing import Literal
from pydantic import BaseModel, Field

DisplayMode = Literal["random", "order", "sequence"]

class FileSettingsIn(BaseModel):
    enabled: bool | None = None
    duration: int | None = Field(default=None, ge=1, le=60)
    weight: int | None = Field(default=None, ge=1, le=10)
    displayMode: DisplayMode | None = None
    displayName: str | None = None

class SettingsIn(BaseModel):
    interval: int | None = Field(default=None, ge=5, le=120)
    duration: int | None = Field(default=None, ge=3, le=60)
    showTips: bool | None = None
    files: dict[str, FileSettingsIn] | None = None

class DisplayModeIn(BaseModel):
    filename: str = Field(..., min_length=1)
    displayMode: DisplayMode
