"""
Poll Engine
One poll per room message, one vote per user (last write wins). Counts and
percentages are derived from the raw vote mapping, never stored.
"""
import logging
import math
import threading
from collections import Counter
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ochat.core.errors import ConflictError, NotFoundError
from ochat.models.poll import Poll

logger = logging.getLogger(__name__)

POLL_MARKER = "[POLL]"


def poll_marker_content(question: str) -> str:
    return f"{POLL_MARKER} {question}"


def _votes(poll: Poll) -> Dict[str, int]:
    return dict(poll.votes or {})


def tally(poll: Poll) -> Dict[int, int]:
    """Count votes per option index. Every option appears, zero included."""
    counts: Counter = Counter(int(choice) for choice in _votes(poll).values())
    result = {index: 0 for index in range(len(poll.options or []))}
    for index, count in counts.items():
        result[index] = count
    return result


def total_voters(poll: Poll) -> int:
    return len(_votes(poll))


def percentages(poll: Poll) -> Dict[int, int]:
    """Share of distinct voters per option, rounded half up."""
    total = total_voters(poll)
    counts = tally(poll)
    if total == 0:
        return {index: 0 for index in counts}
    return {index: math.floor(count / total * 100 + 0.5) for index, count in counts.items()}


def winning_options(poll: Poll) -> List[int]:
    """Indexes sharing the highest count; empty until someone has voted."""
    if total_voters(poll) == 0:
        return []
    counts = tally(poll)
    top = max(counts.values())
    return [index for index, count in counts.items() if count == top]


def vote_of(poll: Poll, user_id: int) -> Optional[int]:
    choice = _votes(poll).get(str(user_id))
    return None if choice is None else int(choice)


def poll_to_dict(poll: Poll) -> Dict[str, Any]:
    return {
        "id": poll.id,
        "message_id": poll.message_id,
        "question": poll.question,
        "options": list(poll.options or []),
        "votes": _votes(poll),
        "timestamp": poll.timestamp,
        "tally": tally(poll),
        "percentages": percentages(poll),
        "total_voters": total_voters(poll),
        "winning_options": winning_options(poll),
    }


class PollService:
    _lock = threading.RLock()

    def __init__(self, db: Session):
        self.db = db

    def create(self, message_id: int, question: str, options: List[str]) -> Poll:
        # Option count is validated by the caller
        with self._lock:
            if self.find_by_message(message_id) is not None:
                raise ConflictError("Message already has a poll")
            poll = Poll(
                message_id=message_id,
                question=question,
                options=list(options),
                votes={},
                timestamp=datetime.now(),
            )
            self.db.add(poll)
            self.db.commit()
            self.db.refresh(poll)
        return poll

    def get(self, poll_id: int) -> Poll:
        poll = self.db.query(Poll).filter(Poll.id == poll_id).first()
        if poll is None:
            raise NotFoundError("Poll not found")
        return poll

    def find_by_message(self, message_id: int) -> Optional[Poll]:
        return self.db.query(Poll).filter(Poll.message_id == message_id).first()

    def get_by_message(self, message_id: int) -> Poll:
        poll = self.find_by_message(message_id)
        if poll is None:
            raise NotFoundError("Poll not found")
        return poll

    def vote(self, poll_id: int, option_index: int, user_id: int) -> Poll:
        """Record ``user_id``'s choice, replacing any earlier one."""
        with self._lock:
            poll = self.get(poll_id)
            votes = _votes(poll)
            votes[str(user_id)] = int(option_index)
            # New dict so the JSON column is flagged dirty
            setattr(poll, "votes", votes)
            self.db.commit()
            self.db.refresh(poll)
        return poll

    def clear(self) -> int:
        with self._lock:
            count = self.db.query(Poll).delete(synchronize_session=False)
            self.db.commit()
        return count
