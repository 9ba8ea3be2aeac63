import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, Boolean, DateTime
from waitroom.db import Base

class StatusLog(Base):
    __tablename__ = "status_log"
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    mode = Column(String(16), nullable=False, default="rooms")
    room1_label = Column(String(20), nullable=True)
    room1_number = Column(Integer, nullable=False, default=0)
    room1_visible = Column(Boolean, nullable=False, default=False)
    room2_label = Column(String(20), nullable=True)
    room2_number = Column(Integer, nullable=False, default=0)
    room2_visible = Column(Boolean, nullable=False, default=False)
    message_text = Column(String(30), nullable=True)
    client_ip = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
