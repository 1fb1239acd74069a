"""Data models for storage layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional


@dataclass
class Conversation:
    id: str
    user_id: str
    channel: str  # "web" | "discord" | "cron"
    started_at: datetime
    last_message_at: datetime
    channel_ref: Optional[str] = None  # e.g. Discord channel id
    summary: Optional[str] = None
    summarized_through: int = 0  # id of the last message folded into summary


@dataclass
class MessageRecord:
    conversation_id: str
    role: str  # "user" | "assistant"
    content: str
    tool_calls: Optional[list[dict[str, Any]]] = None
    tokens_used: Optional[int] = None
    model: Optional[str] = None  # tier name
    cost_cents: Optional[float] = None
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class MessageMetrics:
    """Accounting attached to assistant messages."""

    input_tokens: int
    output_tokens: int
    model: str
    cost_cents: float
    tool_calls: Optional[list[dict[str, Any]]] = None

    @property
    def tokens_used(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass
class ActionRecord:
    conversation_id: Optional[str]
    user_id: str
    action_type: str
    summary: str
    channel: str
    created_at: Optional[datetime] = None
    id: Optional[int] = None


@dataclass
class Observation:
    user_id: str
    content: str
    category: str = "general"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None
