"""Shared pydantic models and error translation for the HTTP layer.

The browser client speaks camelCase, so every model aliases its fields;
snake_case input is accepted too.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from ochat.core.errors import (
    ChatError,
    ConflictError,
    InvalidTransitionError,
    LockedError,
    NotFoundError,
    PolicyError,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class UserResponse(CamelModel):
    id: int
    username: str
    color: str
    status: str
    bio: Optional[str] = None


class MessageResponse(CamelModel):
    id: int
    user_id: int
    content: str
    image_url: Optional[str] = None
    reply_to_id: Optional[int] = None
    is_edited: bool = False
    is_locked: bool = False
    locked_by_user_id: Optional[int] = None
    timestamp: datetime


class ReplyView(MessageResponse):
    user: Optional[UserResponse] = None


class ReactionSummary(CamelModel):
    emoji: str
    count: int
    user_ids: List[int]


class MessageView(MessageResponse):
    user: Optional[UserResponse] = None
    reply_to: Optional[ReplyView] = None
    reactions: List[ReactionSummary] = []
    locked_by_user: Optional[UserResponse] = None


class UserRef(CamelModel):
    user_id: int


class OptionalUserRef(CamelModel):
    user_id: Optional[int] = None


class ContentUpdate(CamelModel):
    content: str
    user_id: Optional[int] = None


def to_http(exc: ChatError) -> HTTPException:
    """Translate a domain error into the HTTP error the client expects."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=exc.message or "Not found")
    if isinstance(exc, LockedError):
        return HTTPException(status_code=423, detail=exc.message or "Message is locked")
    if isinstance(exc, (ConflictError, InvalidTransitionError)):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, PolicyError):
        return HTTPException(status_code=403, detail=exc.message)
    return HTTPException(status_code=400, detail=exc.message)
