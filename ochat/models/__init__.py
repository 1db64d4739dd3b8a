from ochat.models.user import User
from ochat.models.message import Message, Reaction
from ochat.models.direct_message import DMRequest, DirectMessage
from ochat.models.poll import Poll
from ochat.models.file_record import FileRecord

__all__ = ["User", "Message", "Reaction", "DMRequest", "DirectMessage", "Poll", "FileRecord"]
