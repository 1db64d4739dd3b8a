"""
Message Store
Room messages, reactions and lock state. The store enforces only data
invariants: a locked message cannot be edited or deleted. Who may lock,
unlock or react is decided by ``ochat.services.policy``.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from ochat.core.errors import LockedError, NotFoundError
from ochat.models.message import Message, Reaction
from ochat.models.user import User

logger = logging.getLogger(__name__)


def user_to_dict(user: Optional[User]) -> Optional[Dict[str, Any]]:
    if user is None:
        return None
    return {
        "id": user.id,
        "username": user.username,
        "color": user.color,
        "status": user.status,
        "bio": user.bio,
    }


def message_to_dict(message: Message) -> Dict[str, Any]:
    return {
        "id": message.id,
        "user_id": message.user_id,
        "content": message.content,
        "image_url": message.image_url,
        "reply_to_id": message.reply_to_id,
        "is_edited": bool(message.is_edited),
        "is_locked": bool(message.is_locked),
        "locked_by_user_id": message.locked_by_user_id,
        "timestamp": message.timestamp,
    }


def group_reactions(reactions: Iterable[Reaction]) -> List[Dict[str, Any]]:
    """Collapse reaction rows into one entry per emoji, first-used order."""
    grouped: Dict[str, List[int]] = {}
    for reaction in reactions:
        grouped.setdefault(str(reaction.emoji), []).append(int(reaction.user_id))
    return [
        {"emoji": emoji, "count": len(user_ids), "user_ids": user_ids}
        for emoji, user_ids in grouped.items()
    ]


class MessageService:
    """Repository for room messages. One lock guards every check-then-act."""

    _lock = threading.RLock()

    def __init__(self, db: Session):
        self.db = db

    def _get(self, message_id: int) -> Message:
        message = self.db.query(Message).filter(Message.id == message_id).first()
        if message is None:
            raise NotFoundError("Message not found")
        return message

    def get(self, message_id: int) -> Message:
        return self._get(message_id)

    def find(self, message_id: int) -> Optional[Message]:
        return self.db.query(Message).filter(Message.id == message_id).first()

    def create(
        self,
        author_id: int,
        content: str,
        image_url: Optional[str] = None,
        reply_to_id: Optional[int] = None,
    ) -> Message:
        if reply_to_id is not None and self.find(reply_to_id) is None:
            # Best effort only; a dangling reply renders as "deleted"
            logger.debug("Message reply target id=%s does not exist", reply_to_id)
        message = Message(
            user_id=author_id,
            content=content,
            image_url=image_url,
            reply_to_id=reply_to_id,
            is_edited=False,
            is_locked=False,
            locked_by_user_id=None,
            timestamp=datetime.now(),
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def edit(self, message_id: int, new_content: str) -> Message:
        """Replace content. Raises ``NotFoundError`` or ``LockedError``."""
        with self._lock:
            message = self._get(message_id)
            if message.is_locked:
                raise LockedError("Message is locked")
            setattr(message, "content", new_content)
            setattr(message, "is_edited", True)
            self.db.commit()
            self.db.refresh(message)
        return message

    def delete(self, message_id: int, force: bool = False) -> bool:
        """Remove a message.

        Returns False when the id is unknown and raises ``LockedError`` when
        the message is locked, unless ``force`` (admin tooling) is set.
        Reactions and replies pointing at it are left as they are.
        """
        with self._lock:
            message = self.find(message_id)
            if message is None:
                return False
            if message.is_locked and not force:
                raise LockedError("Message is locked")
            self.db.delete(message)
            self.db.commit()
        return True

    def lock(self, message_id: int, by_user_id: int) -> Message:
        with self._lock:
            message = self._get(message_id)
            setattr(message, "is_locked", True)
            setattr(message, "locked_by_user_id", by_user_id)
            self.db.commit()
            self.db.refresh(message)
        return message

    def unlock(self, message_id: int) -> Message:
        with self._lock:
            message = self._get(message_id)
            setattr(message, "is_locked", False)
            setattr(message, "locked_by_user_id", None)
            self.db.commit()
            self.db.refresh(message)
        return message

    def add_reaction(self, message_id: int, user_id: int, emoji: str) -> Reaction:
        """Idempotent: returns the existing row for a repeated triple."""
        with self._lock:
            self._get(message_id)
            existing = self._find_reaction(message_id, user_id, emoji)
            if existing is not None:
                return existing
            reaction = Reaction(message_id=message_id, user_id=user_id, emoji=emoji)
            self.db.add(reaction)
            self.db.commit()
            self.db.refresh(reaction)
        return reaction

    def remove_reaction(self, message_id: int, user_id: int, emoji: str) -> bool:
        with self._lock:
            existing = self._find_reaction(message_id, user_id, emoji)
            if existing is None:
                return False
            self.db.delete(existing)
            self.db.commit()
        return True

    def _find_reaction(self, message_id: int, user_id: int, emoji: str) -> Optional[Reaction]:
        return self.db.query(Reaction).filter(
            Reaction.message_id == message_id,
            Reaction.user_id == user_id,
            Reaction.emoji == emoji,
        ).first()

    def reactions_for(self, message_id: int) -> List[Reaction]:
        return self.db.query(Reaction).filter(Reaction.message_id == message_id).order_by(Reaction.id).all()

    def list_messages(self) -> List[Dict[str, Any]]:
        """Chronological projection with author, reply target, reactions and locker."""
        messages = self.db.query(Message).order_by(Message.timestamp, Message.id).all()
        if not messages:
            return []

        by_id = {m.id: m for m in messages}
        users = {u.id: u for u in self.db.query(User).all()}

        reactions_by_message: Dict[int, List[Reaction]] = {}
        for reaction in self.db.query(Reaction).filter(
            Reaction.message_id.in_(list(by_id.keys()))
        ).order_by(Reaction.id).all():
            reactions_by_message.setdefault(int(reaction.message_id), []).append(reaction)

        result = []
        for message in messages:
            row = message_to_dict(message)
            row["user"] = user_to_dict(users.get(message.user_id))
            row["reply_to"] = None
            if message.reply_to_id is not None:
                target = by_id.get(message.reply_to_id)
                if target is not None:
                    reply = message_to_dict(target)
                    reply["user"] = user_to_dict(users.get(target.user_id))
                    row["reply_to"] = reply
            row["reactions"] = group_reactions(reactions_by_message.get(int(message.id), []))
            row["locked_by_user"] = (
                user_to_dict(users.get(message.locked_by_user_id))
                if message.locked_by_user_id is not None
                else None
            )
            result.append(row)
        return result

    def clear(self) -> int:
        """Remove every message and reaction. Returns the message count."""
        with self._lock:
            count = self.db.query(Message).delete(synchronize_session=False)
            self.db.query(Reaction).delete(synchronize_session=False)
            self.db.commit()
        return count
