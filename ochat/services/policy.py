"""Caller-side rules that sit in front of the stores.

The stores only enforce data invariants (a locked message cannot change).
Everything about *who* may do *what* lives here as plain precondition checks
that raise ``PolicyError`` (or ``ValueError`` for malformed input).
"""
import re
from typing import List, Optional

from ochat.core.config import settings
from ochat.core.errors import PolicyError
from ochat.models.direct_message import DMRequest, DirectMessage
from ochat.models.message import Message
from ochat.models.poll import Poll
from ochat.models.user import User
from ochat.services.dm_service import DMService
from ochat.services.poll_service import vote_of

_MENTION = re.compile(r"@(\w+)")
_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


def normalize_username(value: str) -> str:
    """Trim and validate a username; raises ValueError when unusable."""
    name = (value or "").strip()
    if not name:
        raise ValueError("Username is required")
    if not settings.USERNAME_MIN_LENGTH <= len(name) <= settings.USERNAME_MAX_LENGTH:
        raise ValueError(
            f"Username must be {settings.USERNAME_MIN_LENGTH}-{settings.USERNAME_MAX_LENGTH} characters long"
        )
    if name.lower() in settings.reserved_usernames:
        raise ValueError("This username is reserved")
    return name


def normalize_color(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    if not _COLOR.match(value):
        raise ValueError("Color must look like #RRGGBB")
    return value


def clean_poll_options(options: List[str]) -> List[str]:
    cleaned = [option.strip() for option in options if option and option.strip()]
    if len(cleaned) < 2:
        raise ValueError("A poll needs at least 2 options")
    return cleaned


def mentions_only_self(content: str, username: str) -> bool:
    mentions = [m.lower() for m in _MENTION.findall(content or "")]
    if not mentions:
        return False
    return all(m == username.lower() for m in mentions)


def ensure_can_post(user: User, content: str) -> None:
    if user.status == "offline":
        raise PolicyError("You're offline. Change your status to send messages.")
    if mentions_only_self(content, str(user.username)):
        raise PolicyError("You cannot mention yourself in messages.")


def ensure_can_react(message: Message, user_id: int) -> None:
    if message.user_id == user_id:
        raise PolicyError("You cannot react to your own message.")


def ensure_can_lock(message: Message | DirectMessage, user_id: int) -> None:
    author_id = message.user_id if isinstance(message, Message) else message.from_user_id
    if author_id == user_id:
        raise PolicyError("You cannot lock your own message.")


def ensure_can_unlock(message: Message | DirectMessage, user_id: Optional[int]) -> None:
    # Callers that do not identify themselves are trusted, as the browser client is
    if user_id is None or not message.is_locked:
        return
    if message.locked_by_user_id != user_id:
        raise PolicyError("Only the user who locked this message can unlock it.")


def ensure_author(message: Message | DirectMessage, user_id: Optional[int]) -> None:
    if user_id is None:
        return
    author_id = message.user_id if isinstance(message, Message) else message.from_user_id
    if author_id != user_id:
        raise PolicyError("Only the author can change this message.")


def ensure_can_send_dm(dm_service: DMService, from_user_id: int, to_user_id: int) -> None:
    if from_user_id == to_user_id:
        raise PolicyError("You cannot message yourself.")
    if not dm_service.is_accepted(from_user_id, to_user_id):
        raise PolicyError("Direct messages require an accepted request.")


def ensure_can_request_dm(from_user_id: int, to_user_id: int) -> None:
    if from_user_id == to_user_id:
        raise PolicyError("You cannot send a DM request to yourself.")


def ensure_can_respond(request: DMRequest, user_id: Optional[int]) -> None:
    if user_id is not None and request.to_user_id != user_id:
        raise PolicyError("Only the recipient can respond to this request.")


def ensure_can_vote(poll: Poll, option_index: int, user_id: int) -> None:
    if not 0 <= option_index < len(poll.options or []):
        raise ValueError("Invalid option index")
    if not settings.POLL_ALLOW_REVOTE and vote_of(poll, user_id) is not None:
        raise PolicyError("You have already voted in this poll.")
