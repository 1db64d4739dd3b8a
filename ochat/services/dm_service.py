"""
DM Handshake & Conversation
Opt-in handshake per unordered user pair (pending -> accepted | rejected)
and the private message thread between two users.
"""
import logging
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session

from ochat.core.errors import InvalidTransitionError, LockedError, NotFoundError
from ochat.models.direct_message import DM_REQUEST_STATUSES, DMRequest, DirectMessage
from ochat.models.user import User
from ochat.services.message_service import user_to_dict

logger = logging.getLogger(__name__)

RESOLVED_STATUSES = tuple(s for s in DM_REQUEST_STATUSES if s != "pending")


def _pair_filter(model, user_a: int, user_b: int):
    return or_(
        and_(model.from_user_id == user_a, model.to_user_id == user_b),
        and_(model.from_user_id == user_b, model.to_user_id == user_a),
    )


def dm_request_to_dict(request: DMRequest) -> Dict[str, Any]:
    return {
        "id": request.id,
        "from_user_id": request.from_user_id,
        "to_user_id": request.to_user_id,
        "status": request.status,
        "timestamp": request.timestamp,
    }


class DMService:
    _lock = threading.RLock()

    def __init__(self, db: Session):
        self.db = db

    # Handshake

    def find_request(self, user_a: int, user_b: int) -> Optional[DMRequest]:
        """The request for the unordered pair, whichever side sent it."""
        return self.db.query(DMRequest).filter(
            _pair_filter(DMRequest, user_a, user_b)
        ).order_by(DMRequest.id).first()

    def get_request(self, request_id: int) -> DMRequest:
        request = self.db.query(DMRequest).filter(DMRequest.id == request_id).first()
        if request is None:
            raise NotFoundError("DM request not found")
        return request

    def request_dm(self, from_user_id: int, to_user_id: int) -> DMRequest:
        """Create a pending request, or return the pair's existing one untouched."""
        with self._lock:
            existing = self.find_request(from_user_id, to_user_id)
            if existing is not None:
                return existing
            request = DMRequest(
                from_user_id=from_user_id,
                to_user_id=to_user_id,
                status="pending",
                timestamp=datetime.now(),
            )
            self.db.add(request)
            self.db.commit()
            self.db.refresh(request)
        return request

    def respond(self, request_id: int, status: str) -> DMRequest:
        """Resolve a pending request. Resolved requests are terminal."""
        if status not in RESOLVED_STATUSES:
            raise ValueError(f"Invalid response status: {status}")
        with self._lock:
            request = self.get_request(request_id)
            if request.status != "pending":
                raise InvalidTransitionError(f"DM request already {request.status}")
            setattr(request, "status", status)
            self.db.commit()
            self.db.refresh(request)
        return request

    def requests_for(self, user_id: int) -> List[Dict[str, Any]]:
        """Every request the user sent or received, with both users attached."""
        requests = self.db.query(DMRequest).filter(
            or_(DMRequest.from_user_id == user_id, DMRequest.to_user_id == user_id)
        ).order_by(DMRequest.timestamp, DMRequest.id).all()
        ids = {r.from_user_id for r in requests} | {r.to_user_id for r in requests}
        users = {u.id: u for u in self.db.query(User).filter(User.id.in_(ids)).all()} if ids else {}
        result = []
        for request in requests:
            row = dm_request_to_dict(request)
            row["from_user"] = user_to_dict(users.get(request.from_user_id))
            row["to_user"] = user_to_dict(users.get(request.to_user_id))
            result.append(row)
        return result

    def is_accepted(self, user_a: int, user_b: int) -> bool:
        request = self.find_request(user_a, user_b)
        return request is not None and request.status == "accepted"

    def partners_of(self, user_id: int) -> List[User]:
        accepted = self.db.query(DMRequest).filter(
            DMRequest.status == "accepted",
            or_(DMRequest.from_user_id == user_id, DMRequest.to_user_id == user_id),
        ).order_by(DMRequest.id).all()
        partner_ids = [
            r.to_user_id if r.from_user_id == user_id else r.from_user_id
            for r in accepted
        ]
        if not partner_ids:
            return []
        by_id = {u.id: u for u in self.db.query(User).filter(User.id.in_(partner_ids)).all()}
        return [by_id[pid] for pid in partner_ids if pid in by_id]

    # Conversation

    def _get_message(self, message_id: int) -> DirectMessage:
        message = self.db.query(DirectMessage).filter(DirectMessage.id == message_id).first()
        if message is None:
            raise NotFoundError("Direct message not found")
        return message

    def get_message(self, message_id: int) -> DirectMessage:
        return self._get_message(message_id)

    def send(self, from_user_id: int, to_user_id: int, content: str) -> DirectMessage:
        # The handshake is checked by the caller, see policy.ensure_can_send_dm
        message = DirectMessage(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            content=content,
            is_edited=False,
            is_pinned=False,
            is_read=False,
            is_locked=False,
            timestamp=datetime.now(),
        )
        self.db.add(message)
        self.db.commit()
        self.db.refresh(message)
        return message

    def edit(self, message_id: int, new_content: str) -> DirectMessage:
        with self._lock:
            message = self._get_message(message_id)
            if message.is_locked:
                raise LockedError("Message is locked")
            setattr(message, "content", new_content)
            setattr(message, "is_edited", True)
            self.db.commit()
            self.db.refresh(message)
        return message

    def delete(self, message_id: int) -> bool:
        with self._lock:
            message = self.db.query(DirectMessage).filter(DirectMessage.id == message_id).first()
            if message is None:
                return False
            if message.is_locked:
                raise LockedError("Message is locked")
            self.db.delete(message)
            self.db.commit()
        return True

    def lock(self, message_id: int, by_user_id: int) -> DirectMessage:
        return self._set_flags(message_id, is_locked=True, locked_by_user_id=by_user_id)

    def unlock(self, message_id: int) -> DirectMessage:
        return self._set_flags(message_id, is_locked=False, locked_by_user_id=None)

    def pin(self, message_id: int) -> DirectMessage:
        return self._set_flags(message_id, is_pinned=True)

    def unpin(self, message_id: int) -> DirectMessage:
        return self._set_flags(message_id, is_pinned=False)

    def _set_flags(self, message_id: int, **values: Any) -> DirectMessage:
        with self._lock:
            message = self._get_message(message_id)
            for key, value in values.items():
                setattr(message, key, value)
            self.db.commit()
            self.db.refresh(message)
        return message

    def thread(self, user_a: int, user_b: int) -> List[DirectMessage]:
        return self.db.query(DirectMessage).filter(
            _pair_filter(DirectMessage, user_a, user_b)
        ).order_by(DirectMessage.timestamp, DirectMessage.id).all()

    def pinned(self, user_a: int, user_b: int) -> List[DirectMessage]:
        return self.db.query(DirectMessage).filter(
            _pair_filter(DirectMessage, user_a, user_b),
            DirectMessage.is_pinned.is_(True),
        ).order_by(DirectMessage.timestamp, DirectMessage.id).all()

    def mark_read(self, from_user_id: int, to_user_id: int) -> int:
        """Flag every unread message from ``from_user_id`` to ``to_user_id``."""
        with self._lock:
            updated = self.db.query(DirectMessage).filter(
                DirectMessage.from_user_id == from_user_id,
                DirectMessage.to_user_id == to_user_id,
                DirectMessage.is_read.is_(False),
            ).update({DirectMessage.is_read: True}, synchronize_session=False)
            self.db.commit()
        return updated

    def unread_count(self, user_id: int, from_user_id: int) -> int:
        return self.db.query(DirectMessage).filter(
            DirectMessage.from_user_id == from_user_id,
            DirectMessage.to_user_id == user_id,
            DirectMessage.is_read.is_(False),
        ).count()

    def unread_counts(self, user_id: int) -> Dict[int, int]:
        """Unread totals for ``user_id`` keyed by sender."""
        rows = self.db.query(DirectMessage.from_user_id, func.count(DirectMessage.id)).filter(
            DirectMessage.to_user_id == user_id,
            DirectMessage.is_read.is_(False),
        ).group_by(DirectMessage.from_user_id).all()
        return {int(sender): int(count) for sender, count in rows}


