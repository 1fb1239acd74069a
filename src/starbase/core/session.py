"""Conversation session manager: ownership, persistence and history windows."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional

from starbase.errors import ConversationNotFound
from starbase.log import get_logger
from starbase.storage.conversation_repo import ConversationRepository
from starbase.storage.models import ActionRecord, Conversation, MessageMetrics, MessageRecord

logger = get_logger(__name__)

HISTORY_HARD_CAP = 200


@dataclass
class _TurnLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0  # running plus waiting turns


class SessionManager:
    """Owns conversation/message persistence and ownership checks."""

    def __init__(self, conversation_repo: ConversationRepository, history_cap: int = HISTORY_HARD_CAP):
        self._repo = conversation_repo
        self._history_cap = history_cap
        self._locks: dict[str, _TurnLock] = {}

    async def resolve_or_create(
        self,
        conversation_id: Optional[str],
        user_id: str,
        channel: str,
        channel_ref: Optional[str] = None,
    ) -> str:
        """Return an owned conversation id, creating a conversation if none is given.

        A foreign or unknown id raises ConversationNotFound; it is never
        reassigned to the caller.
        """
        if conversation_id:
            await self.get_owned(conversation_id, user_id)
            return conversation_id

        conversation = await self._repo.create_conversation(user_id, channel, channel_ref)
        logger.info(
            "conversation_created",
            conversation_id=conversation.id,
            user_id=user_id,
            channel=channel,
        )
        return conversation.id

    async def get_owned(self, conversation_id: str, user_id: str) -> Conversation:
        conversation = await self._repo.get_conversation(conversation_id)
        if conversation is None or conversation.user_id != user_id:
            logger.warning(
                "conversation_access_denied", conversation_id=conversation_id, user_id=user_id
            )
            raise ConversationNotFound(conversation_id)
        return conversation

    async def append_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        metrics: Optional[MessageMetrics] = None,
    ) -> MessageRecord:
        record = MessageRecord(conversation_id=conversation_id, role=role, content=content)
        if metrics is not None:
            record.tokens_used = metrics.tokens_used
            record.model = metrics.model
            record.cost_cents = metrics.cost_cents
            record.tool_calls = metrics.tool_calls
        return await self._repo.add_message(record)

    async def save_summary(self, conversation_id: str, summary: str, summarized_through: int) -> None:
        await self._repo.update_summary(conversation_id, summary, summarized_through)

    async def record_action(self, action: ActionRecord) -> int:
        return await self._repo.add_action(action)

    async def load_window(
        self, conversation_id: str, max_messages: int, after_id: int = 0
    ) -> list[MessageRecord]:
        """Most recent messages, oldest first, never more than the hard cap."""
        limit = max(0, min(max_messages, self._history_cap))
        return await self._repo.recent_messages(conversation_id, limit, after_id=after_id)

    async def load_unsummarized(self, conversation_id: str, after_id: int = 0) -> list[MessageRecord]:
        """Every message after the summary watermark, oldest first.

        Uncapped: the compressor must see the whole range it may fold into the
        summary. Only ``load_window`` output is ever sent to the model.
        """
        return await self._repo.messages_after(conversation_id, after_id)

    async def history(self, conversation_id: str, user_id: str, limit: int = 100) -> list[MessageRecord]:
        await self.get_owned(conversation_id, user_id)
        return await self._repo.first_messages(conversation_id, limit)

    async def list_conversations(self, user_id: str, limit: int = 20) -> list[Conversation]:
        return await self._repo.list_conversations(user_id, limit)

    @asynccontextmanager
    async def locked(self, conversation_id: str) -> AsyncIterator[None]:
        """Serialize turns on one conversation.

        The entry is dropped once the last running or waiting turn leaves, so
        the map only holds conversations with a turn in flight.
        """
        entry = self._locks.get(conversation_id)
        if entry is None:
            entry = self._locks[conversation_id] = _TurnLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[conversation_id]
