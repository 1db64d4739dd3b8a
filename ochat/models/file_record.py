from sqlalchemy import Column, Integer, String, DateTime
from datetime import datetime
from ochat.core.database import Base


class FileRecord(Base):
    __tablename__ = "files"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, nullable=True)
    filename = Column(String, unique=True, nullable=False)
    original_name = Column(String, nullable=False)
    size = Column(Integer, nullable=False)
    mime_type = Column(String, nullable=False)
    uploaded_at = Column(DateTime, default=datetime.now)
    expires_at = Column(DateTime, nullable=False, index=True)
