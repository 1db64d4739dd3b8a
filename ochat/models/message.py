from sqlalchemy import Column, Integer, String, DateTime, Boolean, UniqueConstraint
from datetime import datetime
from ochat.core.database import Base


class Message(Base):
    __tablename__ = "messages"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    content = Column(String, nullable=False, default="")
    image_url = Column(String, nullable=True)
    # Plain id, not a relationship: the target may be deleted later
    reply_to_id = Column(Integer, nullable=True)
    is_edited = Column(Boolean, nullable=False, default=False)
    is_locked = Column(Boolean, nullable=False, default=False)
    locked_by_user_id = Column(Integer, nullable=True)
    timestamp = Column(DateTime, default=datetime.now, index=True)


class Reaction(Base):
    __tablename__ = "reactions"
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_reaction_triple"),
    )
    id = Column(Integer, primary_key=True, index=True)
    # No FK constraint: reactions may outlive their message
    message_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False)
    emoji = Column(String, nullable=False)
