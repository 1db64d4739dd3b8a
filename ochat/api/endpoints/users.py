from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import field_validator
from sqlalchemy.orm import Session

from ochat.api.schemas import CamelModel, UserRef, UserResponse, to_http
from ochat.core.config import settings
from ochat.core.database import get_db
from ochat.core.errors import ChatError
from ochat.services.activity_logger import log_login, log_logout, log_status, nick_cache
from ochat.services.policy import normalize_color, normalize_username
from ochat.services.presence import presence
from ochat.services.user_service import UserService

router = APIRouter(prefix="/api", tags=["users"])


class LoginRequest(CamelModel):
    username: str
    color: Optional[str] = None

    @field_validator("username")
    @classmethod
    def _username(cls, value: str) -> str:
        return normalize_username(value)

    @field_validator("color")
    @classmethod
    def _color(cls, value: Optional[str]) -> Optional[str]:
        return normalize_color(value)


class ProfileUpdate(CamelModel):
    username: Optional[str] = None
    color: Optional[str] = None
    bio: Optional[str] = None

    @field_validator("username")
    @classmethod
    def _username(cls, value: Optional[str]) -> Optional[str]:
        return None if value is None else normalize_username(value)

    @field_validator("color")
    @classmethod
    def _color(cls, value: Optional[str]) -> Optional[str]:
        return normalize_color(value)

    @field_validator("bio")
    @classmethod
    def _bio(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) > 200:
            raise ValueError("Bio must be 200 characters or less")
        return value


class StatusUpdate(CamelModel):
    status: Literal["online", "away", "busy", "offline"]


class HeartbeatResponse(CamelModel):
    ok: bool
    active_window_seconds: int
    heartbeat_interval_seconds: int


@router.post("/users/login", response_model=UserResponse)
async def login(body: LoginRequest, db: Session = Depends(get_db)):
    try:
        user, created = UserService(db).login(body.username, body.color)
    except ChatError as e:
        raise to_http(e) from e
    log_login(user.id, user.username, created)
    return user


@router.get("/users", response_model=List[UserResponse])
async def list_active_users(db: Session = Depends(get_db)):
    return presence.active_users(db)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, db: Session = Depends(get_db)):
    try:
        return UserService(db).get(user_id)
    except ChatError as e:
        raise to_http(e) from e


@router.patch("/users/{user_id}", response_model=UserResponse)
async def update_profile(user_id: int, body: ProfileUpdate, db: Session = Depends(get_db)):
    try:
        user = UserService(db).update_profile(
            user_id, username=body.username, color=body.color, bio=body.bio
        )
    except ChatError as e:
        raise to_http(e) from e
    nick_cache.set_name(user.id, user.username)
    return user


@router.patch("/users/{user_id}/status", response_model=UserResponse)
async def update_status(user_id: int, body: StatusUpdate, db: Session = Depends(get_db)):
    try:
        user = UserService(db).update_status(user_id, body.status)
    except ChatError as e:
        raise to_http(e) from e
    log_status(user_id, body.status)
    return user


@router.post("/heartbeat", response_model=HeartbeatResponse)
async def heartbeat(body: UserRef, db: Session = Depends(get_db)):
    ok = UserService(db).heartbeat(body.user_id)
    return HeartbeatResponse(
        ok=ok,
        active_window_seconds=settings.ACTIVE_WINDOW_SECONDS,
        heartbeat_interval_seconds=settings.HEARTBEAT_INTERVAL_SECONDS,
    )


@router.post("/logout", status_code=204)
async def logout(body: UserRef, db: Session = Depends(get_db)):
    # Unknown ids are ignored so a late beacon never errors
    if presence.logout(db, body.user_id) is not None:
        log_logout(body.user_id)
    return Response(status_code=204)
