import logging
import sys
from typing import Dict, Optional, Any

_logger = logging.getLogger("ochat.activity")
if not _logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    formatter = logging.Formatter("%(asctime)s %(message)s")
    handler.setFormatter(formatter)
    _logger.addHandler(handler)
    _logger.setLevel(logging.INFO)
    _logger.propagate = False


class NickCache:
    """Remembers usernames so log lines can name users without a query."""

    def __init__(self) -> None:
        self._names: Dict[int, str] = {}

    def set_name(self, user_id: int, username: str) -> None:
        self._names[user_id] = username

    def forget(self, user_id: int) -> None:
        self._names.pop(user_id, None)

    def get_name(self, user_id: int) -> str:
        name = self._names.get(user_id)
        return name if name else f"user{user_id}"


nick_cache = NickCache()


def _who(user_id: int | Any) -> str:
    return f"{nick_cache.get_name(user_id)}({user_id})"


def _clip(text: Optional[str], limit: int = 80) -> str:
    if not text:
        return ""
    text = text.replace("\n", " ")
    return text if len(text) <= limit else text[: limit - 3] + "..."


def log_login(user_id: int | Any, username: str | Any, created: bool) -> None:
    nick_cache.set_name(user_id, username)
    _logger.info(f"LOGIN {_who(user_id)} {'new' if created else 'resumed'}")


def log_logout(user_id: int | Any) -> None:
    _logger.info(f"LOGOUT {_who(user_id)}")


def log_status(user_id: int | Any, status: str) -> None:
    _logger.info(f"STATUS {_who(user_id)} {status}")


def log_message(user_id: int | Any, message_id: int | Any, content: str | None) -> None:
    _logger.info(f"MSG {_who(user_id)} #{message_id} :{_clip(content)}")


def log_edit(message_id: int | Any, kind: str = "room") -> None:
    _logger.info(f"EDIT {kind} #{message_id}")


def log_delete(message_id: int | Any, kind: str = "room", forced: bool = False) -> None:
    suffix = " (admin)" if forced else ""
    _logger.info(f"DELETE {kind} #{message_id}{suffix}")


def log_lock(message_id: int | Any, user_id: int | Any | None, kind: str = "room") -> None:
    if user_id is None:
        _logger.info(f"UNLOCK {kind} #{message_id}")
    else:
        _logger.info(f"LOCK {kind} #{message_id} by {_who(user_id)}")


def log_dm_request(request_id: int | Any, from_id: int | Any, to_id: int | Any, status: str) -> None:
    _logger.info(f"DMREQ #{request_id} {_who(from_id)} -> {_who(to_id)} [{status}]")


def log_dm_response(request_id: int | Any, status: str) -> None:
    _logger.info(f"DMRESP #{request_id} {status}")


def log_direct_message(from_id: int | Any, to_id: int | Any, dm_id: int | Any) -> None:
    _logger.info(f"DM #{dm_id} {_who(from_id)} -> {_who(to_id)}")


def log_poll(poll_id: int | Any, message_id: int | Any, question: str) -> None:
    _logger.info(f"POLL #{poll_id} on message #{message_id} :{_clip(question)}")


def log_vote(poll_id: int | Any, user_id: int | Any, option_index: int) -> None:
    _logger.info(f"VOTE #{poll_id} {_who(user_id)} option={option_index}")


def log_upload(file_id: int | Any, original_name: str, size: int) -> None:
    _logger.info(f"UPLOAD #{file_id} {original_name} ({size} bytes)")


def log_sweep(removed: int) -> None:
    _logger.info(f"SWEEP removed={removed}")
