"""Request/response shapes shared by the HTTP surface and channel adapters."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TurnBody(BaseModel):
    message: Optional[str] = None
    conversation_id: Optional[str] = None
    channel: Optional[str] = None


class TokenUsage(BaseModel):
    input: int
    output: int
    total: int


class TurnResponse(BaseModel):
    response_text: str
    conversation_id: str
    model_tier: str
    tokens: TokenUsage
    cost_cents: float
    tool_rounds: int
    degraded: bool = False


class ConversationSummary(BaseModel):
    id: str
    channel: str
    started_at: datetime
    last_message_at: datetime


class HistoryMessage(BaseModel):
    role: str
    content: str
    model: Optional[str] = None
    tokens_used: Optional[int] = None
    cost_cents: Optional[float] = None
    created_at: Optional[datetime] = None


class ConversationList(BaseModel):
    conversations: list[ConversationSummary] = Field(default_factory=list)


class MessageList(BaseModel):
    messages: list[HistoryMessage] = Field(default_factory=list)
