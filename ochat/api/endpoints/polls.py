from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field, field_validator, model_validator
from sqlalchemy.orm import Session

from ochat.api.schemas import CamelModel, to_http
from ochat.core.database import get_db
from ochat.core.errors import ChatError
from ochat.services import policy
from ochat.services.activity_logger import log_message, log_poll, log_vote
from ochat.services.message_service import MessageService
from ochat.services.poll_service import PollService, poll_marker_content, poll_to_dict
from ochat.services.user_service import UserService

router = APIRouter(prefix="/api/polls", tags=["polls"])


class PollCreate(CamelModel):
    question: str = Field(min_length=1, max_length=300)
    options: List[str]
    message_id: Optional[int] = None
    user_id: Optional[int] = None

    @field_validator("question")
    @classmethod
    def _question(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Question is required")
        return value

    @field_validator("options")
    @classmethod
    def _options(cls, value: List[str]) -> List[str]:
        return policy.clean_poll_options(value)

    @model_validator(mode="after")
    def _anchor(self) -> "PollCreate":
        if self.message_id is None and self.user_id is None:
            raise ValueError("Either messageId or userId is required")
        return self


class VoteRequest(CamelModel):
    option_index: int
    user_id: int


class PollView(CamelModel):
    id: int
    message_id: int
    question: str
    options: List[str]
    votes: Dict[str, int]
    timestamp: datetime
    tally: Dict[int, int]
    percentages: Dict[int, int]
    total_voters: int
    winning_options: List[int]


@router.post("", response_model=PollView, status_code=201)
async def create_poll(body: PollCreate, db: Session = Depends(get_db)):
    messages = MessageService(db)
    polls = PollService(db)
    try:
        if body.message_id is None:
            author = UserService(db).get(body.user_id)
            content = poll_marker_content(body.question)
            policy.ensure_can_post(author, content)
            message = messages.create(author_id=author.id, content=content)
            log_message(author.id, message.id, content)
            message_id = message.id
        else:
            message_id = messages.get(body.message_id).id
        poll = polls.create(message_id, body.question, body.options)
    except ChatError as e:
        raise to_http(e) from e
    log_poll(poll.id, message_id, body.question)
    return poll_to_dict(poll)


@router.get("/{message_id}", response_model=PollView)
async def get_poll(message_id: int, db: Session = Depends(get_db)):
    try:
        return poll_to_dict(PollService(db).get_by_message(message_id))
    except ChatError as e:
        raise to_http(e) from e


@router.post("/{poll_id}/vote", response_model=PollView)
async def vote(poll_id: int, body: VoteRequest, db: Session = Depends(get_db)):
    service = PollService(db)
    try:
        UserService(db).get(body.user_id)
        policy.ensure_can_vote(service.get(poll_id), body.option_index, body.user_id)
        poll = service.vote(poll_id, body.option_index, body.user_id)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ChatError as e:
        raise to_http(e) from e
    log_vote(poll_id, body.user_id, body.option_index)
    return poll_to_dict(poll)
