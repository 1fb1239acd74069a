"""Conversation, message and action persistence."""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any, Optional

from starbase.log import get_logger
from starbase.storage.database import Database
from starbase.storage.models import ActionRecord, Conversation, MessageRecord

logger = get_logger(__name__)

_NOW = "strftime('%Y-%m-%dT%H:%M:%f','now')"


class ConversationRepository:
    """CRUD over conversations, their messages, and the action audit trail."""

    def __init__(self, db: Database):
        self._db = db

    # -- conversations -----------------------------------------------------

    async def create_conversation(
        self, user_id: str, channel: str, channel_ref: Optional[str] = None
    ) -> Conversation:
        conversation_id = uuid.uuid4().hex
        await self._db.conn.execute(
            "INSERT INTO conversations (id, user_id, channel, channel_ref) VALUES (?, ?, ?, ?)",
            (conversation_id, user_id, str(channel), channel_ref),
        )
        await self._db.conn.commit()
        conversation = await self.get_conversation(conversation_id)
        if conversation is None:
            raise RuntimeError(f"Conversation {conversation_id} missing right after insert")
        return conversation

    async def get_conversation(self, conversation_id: str) -> Conversation | None:
        cursor = await self._db.conn.execute(
            "SELECT * FROM conversations WHERE id = ?", (conversation_id,)
        )
        row = await cursor.fetchone()
        return self._row_to_conversation(row) if row else None

    async def list_conversations(self, user_id: str, limit: int = 20) -> list[Conversation]:
        """Most recently active conversations of a user."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM conversations
               WHERE user_id = ?
               ORDER BY last_message_at DESC, started_at DESC
               LIMIT ?""",
            (user_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_conversation(row) for row in rows]

    async def update_summary(
        self, conversation_id: str, summary: str, summarized_through: int
    ) -> None:
        """Replace the summary and move the coverage watermark."""
        await self._db.conn.execute(
            "UPDATE conversations SET summary = ?, summarized_through = ? WHERE id = ?",
            (summary, summarized_through, conversation_id),
        )
        await self._db.conn.commit()

    # -- messages ----------------------------------------------------------

    async def add_message(self, record: MessageRecord) -> MessageRecord:
        """Insert a message and bump the conversation's last_message_at."""
        cursor = await self._db.conn.execute(
            """INSERT INTO messages
               (conversation_id, role, content, tool_calls, tokens_used, model, cost_cents)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                record.conversation_id,
                str(record.role),
                record.content,
                json.dumps(record.tool_calls) if record.tool_calls is not None else None,
                record.tokens_used,
                record.model,
                record.cost_cents,
            ),
        )
        message_id = cursor.lastrowid
        await self._db.conn.execute(
            f"UPDATE conversations SET last_message_at = {_NOW} WHERE id = ?",
            (record.conversation_id,),
        )
        await self._db.conn.commit()
        cursor = await self._db.conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,))
        row = await cursor.fetchone()
        return self._row_to_message(row)

    async def recent_messages(
        self, conversation_id: str, limit: int, after_id: int = 0
    ) -> list[MessageRecord]:
        """The newest ``limit`` messages with id > ``after_id``, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM (
                   SELECT * FROM messages
                   WHERE conversation_id = ? AND id > ?
                   ORDER BY created_at DESC, id DESC
                   LIMIT ?
               ) ORDER BY created_at ASC, id ASC""",
            (conversation_id, after_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def messages_after(self, conversation_id: str, after_id: int = 0) -> list[MessageRecord]:
        """All messages with id > ``after_id``, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM messages
               WHERE conversation_id = ? AND id > ?
               ORDER BY created_at ASC, id ASC""",
            (conversation_id, after_id),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def first_messages(self, conversation_id: str, limit: int = 100) -> list[MessageRecord]:
        """Messages from the start of a conversation, oldest first."""
        cursor = await self._db.conn.execute(
            """SELECT * FROM messages
               WHERE conversation_id = ?
               ORDER BY created_at ASC, id ASC
               LIMIT ?""",
            (conversation_id, limit),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    async def assistant_messages_since(self, user_id: str, since: str) -> list[MessageRecord]:
        """Assistant messages of a user's conversations created at or after ``since``."""
        cursor = await self._db.conn.execute(
            """SELECT m.* FROM messages m
               JOIN conversations c ON c.id = m.conversation_id
               WHERE c.user_id = ? AND m.role = 'assistant' AND m.created_at >= ?
               ORDER BY m.created_at DESC, m.id DESC""",
            (user_id, since),
        )
        rows = await cursor.fetchall()
        return [self._row_to_message(row) for row in rows]

    # -- actions -----------------------------------------------------------

    async def add_action(self, record: ActionRecord) -> int:
        cursor = await self._db.conn.execute(
            """INSERT INTO actions (conversation_id, user_id, action_type, summary, channel)
               VALUES (?, ?, ?, ?, ?)""",
            (
                record.conversation_id,
                record.user_id,
                record.action_type,
                record.summary,
                record.channel,
            ),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def list_actions(self, conversation_id: str) -> list[ActionRecord]:
        cursor = await self._db.conn.execute(
            "SELECT * FROM actions WHERE conversation_id = ? ORDER BY id ASC",
            (conversation_id,),
        )
        rows = await cursor.fetchall()
        return [
            ActionRecord(
                id=row["id"],
                conversation_id=row["conversation_id"],
                user_id=row["user_id"],
                action_type=row["action_type"],
                summary=row["summary"],
                channel=row["channel"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]

    # -- row mapping -------------------------------------------------------

    @staticmethod
    def _row_to_conversation(row: Any) -> Conversation:
        return Conversation(
            id=row["id"],
            user_id=row["user_id"],
            channel=row["channel"],
            channel_ref=row["channel_ref"],
            started_at=datetime.fromisoformat(row["started_at"]),
            last_message_at=datetime.fromisoformat(row["last_message_at"]),
            summary=row["summary"],
            summarized_through=row["summarized_through"],
        )

    @staticmethod
    def _row_to_message(row: Any) -> MessageRecord:
        return MessageRecord(
            id=row["id"],
            conversation_id=row["conversation_id"],
            role=row["role"],
            content=row["content"],
            tool_calls=json.loads(row["tool_calls"]) if row["tool_calls"] else None,
            tokens_used=row["tokens_used"],
            model=row["model"],
            cost_cents=row["cost_cents"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
