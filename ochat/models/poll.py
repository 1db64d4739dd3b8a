from sqlalchemy import Column, Integer, String, DateTime, JSON
from datetime import datetime
from ochat.core.database import Base


class Poll(Base):
    """A poll attached 1:1 to a room message.

    ``votes`` maps the voter's user id (as a string, JSON keys) to the chosen
    option index. Always assign a new dict; in-place edits are not tracked.
    """
    __tablename__ = "polls"

    id = Column(Integer, primary_key=True, index=True)
    message_id = Column(Integer, unique=True, nullable=False, index=True)
    question = Column(String, nullable=False)
    options = Column(JSON, nullable=False, default=list)
    votes = Column(JSON, nullable=False, default=dict)
    timestamp = Column(DateTime, default=datetime.now)
