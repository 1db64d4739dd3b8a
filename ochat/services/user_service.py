"""User Directory: identity, profile and status records."""
import logging
import threading
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from ochat.core.errors import ConflictError, NotFoundError
from ochat.models.user import User, USER_STATUSES
from ochat.services.presence import PresenceTracker, presence as default_presence

logger = logging.getLogger(__name__)

DEFAULT_COLOR = "#000000"


class UserService:
    _lock = threading.RLock()

    def __init__(self, db: Session, tracker: Optional[PresenceTracker] = None):
        self.db = db
        self.presence = tracker if tracker is not None else default_presence

    def get(self, user_id: int) -> User:
        user = self.db.query(User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError("User not found")
        return user

    def find(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_username(self, username: str) -> Optional[User]:
        # Case-sensitive on purpose
        return self.db.query(User).filter(User.username == username).first()

    def list_all(self) -> List[User]:
        return self.db.query(User).order_by(User.id).all()

    def login(self, username: str, color: Optional[str] = None, now: Optional[float] = None) -> Tuple[User, bool]:
        """Create or resume the user called ``username``.

        Raises ``ConflictError`` if someone is currently active under that name.
        Returns ``(user, created)``.
        """
        with self._lock:
            user = self.get_by_username(username)
            created = False
            if user is None:
                user = User(username=username, color=color or DEFAULT_COLOR, status="online")
                self.db.add(user)
                created = True
            else:
                if self.presence.is_active(int(user.id), now=now):
                    raise ConflictError("Username is already in use")
                if color:
                    setattr(user, "color", color)
                if user.status == "offline":
                    setattr(user, "status", "online")
            self.db.commit()
            self.db.refresh(user)
            self.presence.touch(int(user.id), now=now)
        return user, created

    def heartbeat(self, user_id: int, now: Optional[float] = None) -> bool:
        """Refresh presence. Unknown and logged out ids are ignored."""
        user = self.find(user_id)
        if user is None:
            return False
        # A late beacon after logout must not bring the user back
        if user.status == "offline" and self.presence.last_seen(user_id) is None:
            return False
        self.presence.touch(user_id, now=now)
        return True

    def update_status(self, user_id: int, status: str) -> User:
        if status not in USER_STATUSES:
            raise ValueError(f"Invalid status: {status}")
        user = self.get(user_id)
        setattr(user, "status", status)
        self.db.commit()
        self.db.refresh(user)
        return user

    def update_profile(
        self,
        user_id: int,
        username: Optional[str] = None,
        color: Optional[str] = None,
        bio: Optional[str] = None,
    ) -> User:
        with self._lock:
            user = self.get(user_id)
            if username is not None and username != user.username:
                taken = self.get_by_username(username)
                if taken is not None and taken.id != user.id:
                    raise ConflictError("Username is already taken")
                setattr(user, "username", username)
            if color is not None:
                setattr(user, "color", color)
            if bio is not None:
                setattr(user, "bio", bio)
            self.db.commit()
            self.db.refresh(user)
        return user

    def delete(self, user_id: int) -> bool:
        """Hard delete, admin tooling only."""
        user = self.find(user_id)
        if user is None:
            return False
        self.db.delete(user)
        self.db.commit()
        self.presence.forget(user_id)
        logger.info("Deleted user id=%s", user_id)
        return True
