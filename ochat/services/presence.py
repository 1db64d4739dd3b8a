"""
Presence Tracker
Heartbeat-based "active now" tracking. Clients call ``touch`` periodically;
a user is active while their last heartbeat is younger than the window.
"""
import logging
import threading
import time
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ochat.core.config import settings
from ochat.models.user import User

logger = logging.getLogger(__name__)


class PresenceTracker:
    """Process-local map of user id -> last heartbeat (epoch seconds)."""

    def __init__(self, window_seconds: Optional[float] = None):
        self._window = float(window_seconds if window_seconds is not None else settings.ACTIVE_WINDOW_SECONDS)
        self._last_seen: Dict[int, float] = {}
        self._lock = threading.RLock()

    @property
    def window_seconds(self) -> float:
        return self._window

    def touch(self, user_id: int, now: Optional[float] = None) -> None:
        """Record a heartbeat for ``user_id``."""
        stamp = time.time() if now is None else now
        with self._lock:
            self._last_seen[user_id] = stamp

    def last_seen(self, user_id: int) -> Optional[float]:
        with self._lock:
            return self._last_seen.get(user_id)

    def is_active(self, user_id: int, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        with self._lock:
            seen = self._last_seen.get(user_id)
        return seen is not None and current - seen < self._window

    def active_user_ids(self, now: Optional[float] = None) -> List[int]:
        """Ids inside the window, in first-seen order."""
        current = time.time() if now is None else now
        with self._lock:
            return [uid for uid, seen in self._last_seen.items() if current - seen < self._window]

    def active_users(self, db: Session, now: Optional[float] = None) -> List[User]:
        """Active ids joined with the user directory; unknown ids are skipped."""
        ids = self.active_user_ids(now)
        if not ids:
            return []
        by_id = {u.id: u for u in db.query(User).filter(User.id.in_(ids)).all()}
        return [by_id[uid] for uid in ids if uid in by_id]

    def forget(self, user_id: int) -> bool:
        with self._lock:
            return self._last_seen.pop(user_id, None) is not None

    def logout(self, db: Session, user_id: int) -> Optional[User]:
        """Drop the presence record and mark the user offline right away."""
        self.forget(user_id)
        user = db.query(User).filter(User.id == user_id).first()
        if user is None:
            logger.debug("logout for unknown user id=%s ignored", user_id)
            return None
        setattr(user, "status", "offline")
        db.commit()
        db.refresh(user)
        return user

    def clear(self) -> None:
        with self._lock:
            self._last_seen.clear()


presence = PresenceTracker()
