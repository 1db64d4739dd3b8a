"""Domain errors raised by the stores and the policy layer.

Stores mostly raise ``NotFoundError``, ``LockedError`` and
``InvalidTransitionError``; ``ConflictError`` covers uniqueness (usernames,
one poll per message) and ``PolicyError`` comes from ``ochat.services.policy``.
"""


class ChatError(Exception):
    """Base class for every error the chat core raises."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class NotFoundError(ChatError):
    """The referenced id does not exist."""


class LockedError(ChatError):
    """The target is locked and cannot be edited or deleted."""


class ConflictError(ChatError):
    """A uniqueness rule was violated (username in use, taken name)."""


class InvalidTransitionError(ChatError):
    """A state machine was asked for a transition it does not allow."""


class PolicyError(ChatError):
    """The caller is not allowed to perform the action."""
