from typing import List, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import Field, model_validator
from sqlalchemy.orm import Session

from ochat.api.schemas import (
    CamelModel,
    ContentUpdate,
    MessageResponse,
    MessageView,
    OptionalUserRef,
    UserRef,
    to_http,
)
from ochat.core.database import get_db
from ochat.core.errors import ChatError
from ochat.services import policy
from ochat.services.activity_logger import log_delete, log_edit, log_lock, log_message
from ochat.services.message_service import MessageService
from ochat.services.user_service import UserService

router = APIRouter(prefix="/api", tags=["messages"])


class MessageCreate(CamelModel):
    user_id: int
    content: str = Field(default="", max_length=5000)
    image_url: Optional[str] = None
    reply_to_id: Optional[int] = None

    @model_validator(mode="after")
    def _not_empty(self) -> "MessageCreate":
        if not self.content.strip() and not self.image_url:
            raise ValueError("Message needs content or an image")
        return self


class ReactionRequest(CamelModel):
    message_id: int
    user_id: int
    emoji: str = Field(min_length=1, max_length=32)


class ReactionResponse(CamelModel):
    id: int
    message_id: int
    user_id: int
    emoji: str


class ReactionRemoved(CamelModel):
    removed: bool


@router.get("/messages", response_model=List[MessageView])
async def list_messages(db: Session = Depends(get_db)):
    return MessageService(db).list_messages()


@router.post("/messages", response_model=MessageResponse, status_code=201)
async def create_message(body: MessageCreate, db: Session = Depends(get_db)):
    try:
        author = UserService(db).get(body.user_id)
        policy.ensure_can_post(author, body.content)
    except ChatError as e:
        raise to_http(e) from e
    message = MessageService(db).create(
        author_id=body.user_id,
        content=body.content,
        image_url=body.image_url,
        reply_to_id=body.reply_to_id,
    )
    log_message(body.user_id, message.id, message.content)
    return message


@router.patch("/messages/{message_id}", response_model=MessageResponse)
async def update_message(message_id: int, body: ContentUpdate, db: Session = Depends(get_db)):
    service = MessageService(db)
    try:
        policy.ensure_author(service.get(message_id), body.user_id)
        message = service.edit(message_id, body.content)
    except ChatError as e:
        raise to_http(e) from e
    log_edit(message_id)
    return message


@router.delete("/messages/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    user_id: Optional[int] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
):
    service = MessageService(db)
    try:
        existing = service.find(message_id)
        if existing is not None:
            policy.ensure_author(existing, user_id)
        deleted = service.delete(message_id)
    except ChatError as e:
        raise to_http(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Message not found")
    log_delete(message_id)
    return Response(status_code=204)


@router.post("/messages/{message_id}/lock", response_model=MessageResponse)
async def lock_message(message_id: int, body: UserRef, db: Session = Depends(get_db)):
    service = MessageService(db)
    try:
        policy.ensure_can_lock(service.get(message_id), body.user_id)
        message = service.lock(message_id, body.user_id)
    except ChatError as e:
        raise to_http(e) from e
    log_lock(message_id, body.user_id)
    return message


@router.post("/messages/{message_id}/unlock", response_model=MessageResponse)
async def unlock_message(
    message_id: int,
    body: Optional[OptionalUserRef] = Body(default=None),
    db: Session = Depends(get_db),
):
    service = MessageService(db)
    user_id = body.user_id if body else None
    try:
        policy.ensure_can_unlock(service.get(message_id), user_id)
        message = service.unlock(message_id)
    except ChatError as e:
        raise to_http(e) from e
    log_lock(message_id, None)
    return message


@router.post("/reactions", response_model=ReactionResponse)
async def add_reaction(body: ReactionRequest, db: Session = Depends(get_db)):
    service = MessageService(db)
    try:
        policy.ensure_can_react(service.get(body.message_id), body.user_id)
        return service.add_reaction(body.message_id, body.user_id, body.emoji)
    except ChatError as e:
        raise to_http(e) from e


@router.delete("/reactions", response_model=ReactionRemoved)
async def remove_reaction(body: ReactionRequest, db: Session = Depends(get_db)):
    removed = MessageService(db).remove_reaction(body.message_id, body.user_id, body.emoji)
    return ReactionRemoved(removed=removed)
