from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime
from waitroom.db import Base

class PlayCursorRow(Base):
    __tablename__ = "play_cursor"
    kiosk = Column(String(64), primary_key=True)
    playlist_index = Column(Integer, nullable=False, default=0)
    file_index = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
