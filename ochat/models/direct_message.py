from sqlalchemy import Column, Integer, String, DateTime, Boolean
from datetime import datetime
from ochat.core.database import Base

DM_REQUEST_STATUSES = ("pending", "accepted", "rejected")


class DMRequest(Base):
    """Opt-in handshake between two users; one row per unordered pair."""
    __tablename__ = "dm_requests"

    id = Column(Integer, primary_key=True, index=True)
    from_user_id = Column(Integer, nullable=False, index=True)
    to_user_id = Column(Integer, nullable=False, index=True)
    status = Column(String, nullable=False, default="pending")
    timestamp = Column(DateTime, default=datetime.now)


class DirectMessage(Base):
    __tablename__ = "direct_messages"

    id = Column(Integer, primary_key=True, index=True)
    from_user_id = Column(Integer, nullable=False, index=True)
    to_user_id = Column(Integer, nullable=False, index=True)
    content = Column(String, nullable=False)
    is_edited = Column(Boolean, nullable=False, default=False)
    is_pinned = Column(Boolean, nullable=False, default=False)
    is_read = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_by_user_id = Column(Integer, nullable=True)
    timestamp = Column(DateTime, default=datetime.now)
