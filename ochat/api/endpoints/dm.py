from datetime import datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response
from pydantic import Field
from sqlalchemy.orm import Session

from ochat.api.schemas import (
    CamelModel,
    ContentUpdate,
    OptionalUserRef,
    UserRef,
    UserResponse,
    to_http,
)
from ochat.core.database import get_db
from ochat.core.errors import ChatError
from ochat.services import policy
from ochat.services.activity_logger import (
    log_delete,
    log_direct_message,
    log_dm_request,
    log_dm_response,
    log_edit,
    log_lock,
)
from ochat.services.dm_service import DMService
from ochat.services.user_service import UserService

router = APIRouter(prefix="/api/dm", tags=["dm"])


class DMRequestCreate(CamelModel):
    from_user_id: int
    to_user_id: int


class DMRequestRespond(CamelModel):
    status: Literal["accepted", "rejected"]
    user_id: Optional[int] = None


class DMRequestResponse(CamelModel):
    id: int
    from_user_id: int
    to_user_id: int
    status: str
    timestamp: datetime


class DMRequestView(DMRequestResponse):
    from_user: Optional[UserResponse] = None
    to_user: Optional[UserResponse] = None


class DirectMessageCreate(CamelModel):
    from_user_id: int
    to_user_id: int
    content: str = Field(min_length=1, max_length=5000)


class DirectMessageResponse(CamelModel):
    id: int
    from_user_id: int
    to_user_id: int
    content: str
    is_edited: bool
    is_pinned: bool
    is_read: bool
    is_locked: bool
    locked_by_user_id: Optional[int] = None
    timestamp: datetime


class MarkReadRequest(CamelModel):
    from_user_id: int
    to_user_id: int


class CountResponse(CamelModel):
    count: int


# Handshake

@router.post("/request", response_model=DMRequestResponse)
async def request_dm(body: DMRequestCreate, db: Session = Depends(get_db)):
    users = UserService(db)
    try:
        policy.ensure_can_request_dm(body.from_user_id, body.to_user_id)
        users.get(body.from_user_id)
        users.get(body.to_user_id)
    except ChatError as e:
        raise to_http(e) from e
    request = DMService(db).request_dm(body.from_user_id, body.to_user_id)
    log_dm_request(request.id, request.from_user_id, request.to_user_id, str(request.status))
    return request


@router.patch("/request/{request_id}", response_model=DMRequestResponse)
async def respond_dm_request(request_id: int, body: DMRequestRespond, db: Session = Depends(get_db)):
    service = DMService(db)
    try:
        policy.ensure_can_respond(service.get_request(request_id), body.user_id)
        request = service.respond(request_id, body.status)
    except ChatError as e:
        raise to_http(e) from e
    log_dm_response(request_id, body.status)
    return request


@router.get("/requests/{user_id}", response_model=List[DMRequestView])
async def list_dm_requests(user_id: int, db: Session = Depends(get_db)):
    return DMService(db).requests_for(user_id)


@router.get("/partners/{user_id}", response_model=List[UserResponse])
async def list_dm_partners(user_id: int, db: Session = Depends(get_db)):
    return DMService(db).partners_of(user_id)


# Conversation

@router.get("/messages/{user_id}/{other_user_id}", response_model=List[DirectMessageResponse])
async def get_thread(user_id: int, other_user_id: int, db: Session = Depends(get_db)):
    return DMService(db).thread(user_id, other_user_id)


@router.get("/messages/{user_id}/{other_user_id}/pinned", response_model=List[DirectMessageResponse])
async def get_pinned(user_id: int, other_user_id: int, db: Session = Depends(get_db)):
    return DMService(db).pinned(user_id, other_user_id)


@router.post("/messages", response_model=DirectMessageResponse, status_code=201)
async def send_direct_message(body: DirectMessageCreate, db: Session = Depends(get_db)):
    service = DMService(db)
    try:
        policy.ensure_can_send_dm(service, body.from_user_id, body.to_user_id)
    except ChatError as e:
        raise to_http(e) from e
    message = service.send(body.from_user_id, body.to_user_id, body.content)
    log_direct_message(body.from_user_id, body.to_user_id, message.id)
    return message


@router.patch("/messages/{message_id}", response_model=DirectMessageResponse)
async def update_direct_message(message_id: int, body: ContentUpdate, db: Session = Depends(get_db)):
    service = DMService(db)
    try:
        policy.ensure_author(service.get_message(message_id), body.user_id)
        message = service.edit(message_id, body.content)
    except ChatError as e:
        raise to_http(e) from e
    log_edit(message_id, kind="dm")
    return message


@router.delete("/messages/{message_id}", status_code=204)
async def delete_direct_message(
    message_id: int,
    user_id: Optional[int] = Query(default=None, alias="userId"),
    db: Session = Depends(get_db),
):
    service = DMService(db)
    try:
        policy.ensure_author(service.get_message(message_id), user_id)
        deleted = service.delete(message_id)
    except ChatError as e:
        raise to_http(e) from e
    if not deleted:
        raise HTTPException(status_code=404, detail="Direct message not found")
    log_delete(message_id, kind="dm")
    return Response(status_code=204)


@router.post("/messages/{message_id}/lock", response_model=DirectMessageResponse)
async def lock_direct_message(message_id: int, body: UserRef, db: Session = Depends(get_db)):
    service = DMService(db)
    try:
        policy.ensure_can_lock(service.get_message(message_id), body.user_id)
        message = service.lock(message_id, body.user_id)
    except ChatError as e:
        raise to_http(e) from e
    log_lock(message_id, body.user_id, kind="dm")
    return message


@router.post("/messages/{message_id}/unlock", response_model=DirectMessageResponse)
async def unlock_direct_message(
    message_id: int,
    body: Optional[OptionalUserRef] = Body(default=None),
    db: Session = Depends(get_db),
):
    service = DMService(db)
    user_id = body.user_id if body else None
    try:
        policy.ensure_can_unlock(service.get_message(message_id), user_id)
        message = service.unlock(message_id)
    except ChatError as e:
        raise to_http(e) from e
    log_lock(message_id, None, kind="dm")
    return message


@router.post("/messages/{message_id}/pin", response_model=DirectMessageResponse)
async def pin_direct_message(message_id: int, db: Session = Depends(get_db)):
    try:
        return DMService(db).pin(message_id)
    except ChatError as e:
        raise to_http(e) from e


@router.post("/messages/{message_id}/unpin", response_model=DirectMessageResponse)
async def unpin_direct_message(message_id: int, db: Session = Depends(get_db)):
    try:
        return DMService(db).unpin(message_id)
    except ChatError as e:
        raise to_http(e) from e


@router.post("/read", response_model=CountResponse)
async def mark_read(body: MarkReadRequest, db: Session = Depends(get_db)):
    updated = DMService(db).mark_read(body.from_user_id, body.to_user_id)
    return CountResponse(count=updated)


@router.get("/unread/{user_id}", response_model=Dict[int, int])
async def unread_counts(user_id: int, db: Session = Depends(get_db)):
    return DMService(db).unread_counts(user_id)


@router.get("/unread/{user_id}/{from_user_id}", response_model=CountResponse)
async def unread_count(user_id: int, from_user_id: int, db: Session = Depends(get_db)):
    return CountResponse(count=DMService(db).unread_count(user_id, from_user_id))
