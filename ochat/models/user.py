from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from ochat.core.database import Base

USER_STATUSES = ("online", "away", "busy", "offline")


class User(Base):
    __tablename__ = "users"
    id = Column(Integer, primary_key=True, index=True)
    username = Column(String, unique=True, index=True, nullable=False)
    color = Column(String, nullable=False, default="#000000")
    status = Column(String, nullable=False, default="online")
    bio = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
