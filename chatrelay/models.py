"""
Pydantic models for sessions, messages and API payloads.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


MAX_MESSAGE_LENGTH = 2000


class Condition(str, Enum):
    AI = "AI"
    HUMAN = "human"


class Role(str, Enum):
    USER = "user"
    AI = "ai"
    HUMAN = "human"


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    i: int
    role: Role
    text: str
    t: datetime


class Session(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    condition: Condition
    created_at: datetime = Field(alias="createdAt")
    system_prompt: Optional[str] = Field(default=None, alias="systemPrompt")
    messages: List[Message] = Field(default_factory=list)
    awaiting_operator: bool = Field(default=False, alias="awaitingOperator")


class CamelModel(BaseModel):
    """Response model serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True)


class SessionCreateResponse(CamelModel):
    session_id: str = Field(alias="sessionId")
    condition: Condition


class ChatRequest(CamelModel):
    # Clients send either key
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session", "session_id")
    )
    text: Optional[str] = None


class ChatResult(CamelModel):
    reply: Optional[str] = None
    i: Optional[int] = None
    queued: bool


class PollResult(CamelModel):
    items: List[Message]
    awaiting_operator: bool = Field(alias="awaitingOperator")


class Debrief(CamelModel):
    session_id: str = Field(alias="sessionId")
    condition: Condition
    created_at: datetime = Field(alias="createdAt")
    transcript: List[Message]


class InboxItem(CamelModel):
    session_id: str = Field(alias="sessionId")
    last_user_text: str = Field(alias="lastUserText")
    last_at: datetime = Field(alias="lastAt")


class InboxResponse(BaseModel):
    items: List[InboxItem]


class OperatorTranscript(CamelModel):
    session_id: str = Field(alias="sessionId")
    messages: List[Message]
    condition: Condition


class OperatorReplyRequest(CamelModel):
    session_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("sessionId", "session", "session_id")
    )
    text: Optional[str] = None


class OperatorReplyResponse(BaseModel):
    ok: bool = True


class SessionSummary(CamelModel):
    id: str
    condition: Condition
    msgs: int
    awaiting_operator: bool = Field(alias="awaitingOperator")
