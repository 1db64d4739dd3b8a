"""Moderation endpoints behind the admin password header.

Every route answers 404 to callers without the password so the surface
is not discoverable.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ochat.api.endpoints.dm import DirectMessageResponse
from ochat.api.schemas import CamelModel, MessageView, UserResponse
from ochat.core.admin import require_admin
from ochat.core.database import get_db
from ochat.services.activity_logger import log_delete, nick_cache
from ochat.services.dm_service import DMService
from ochat.services.message_service import MessageService
from ochat.services.poll_service import PollService
from ochat.services.user_service import UserService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


class ClearResponse(CamelModel):
    messages: int
    polls: int


class DeleteResponse(CamelModel):
    success: bool


@router.get("/users", response_model=List[UserResponse])
async def list_all_users(db: Session = Depends(get_db)):
    return UserService(db).list_all()


@router.delete("/users/{user_id}", response_model=DeleteResponse)
async def delete_user(user_id: int, db: Session = Depends(get_db)):
    if not UserService(db).delete(user_id):
        raise HTTPException(status_code=404, detail="User not found")
    nick_cache.forget(user_id)
    return DeleteResponse(success=True)


@router.get("/messages", response_model=List[MessageView])
async def list_all_messages(db: Session = Depends(get_db)):
    return MessageService(db).list_messages()


@router.delete("/messages/{message_id}", response_model=DeleteResponse)
async def force_delete_message(message_id: int, db: Session = Depends(get_db)):
    if not MessageService(db).delete(message_id, force=True):
        raise HTTPException(status_code=404, detail="Message not found")
    log_delete(message_id, forced=True)
    return DeleteResponse(success=True)


@router.post("/messages/clear", response_model=ClearResponse)
async def clear_messages(db: Session = Depends(get_db)):
    removed = MessageService(db).clear()
    polls = PollService(db).clear()
    logger.warning("Admin cleared %s messages and %s polls", removed, polls)
    return ClearResponse(messages=removed, polls=polls)


@router.get("/dm/{user_id}/{other_user_id}", response_model=List[DirectMessageResponse])
async def view_dm_thread(user_id: int, other_user_id: int, db: Session = Depends(get_db)):
    return DMService(db).thread(user_id, other_user_id)
