"""Support Chat — transcript records and request/response models."""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Sender(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Message(BaseModel):
    """A persisted transcript entry. Immutable once created."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    conversation_id: int
    sender: Sender
    text: str
    created_at: datetime


# --------------- HTTP ---------------

class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ChatReply(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    reply: str
    session_id: str = Field(alias="sessionId")


class HistoryResponse(BaseModel):
    messages: List[Message]


class ErrorResponse(BaseModel):
    error: str
    category: str


class HealthResponse(BaseModel):
    status: str
    service: str
