"""Synchronous web chat channel."""

from __future__ import annotations

from typing import Optional

from starbase.ai.orchestrator import TurnOrchestrator, TurnRequest
from starbase.channels.models import (
    ConversationList,
    ConversationSummary,
    HistoryMessage,
    MessageList,
    TokenUsage,
    TurnBody,
    TurnResponse,
)
from starbase.core.session import SessionManager
from starbase.core.types import Channel
from starbase.errors import AuthError, ValidationError

HISTORY_MESSAGE_LIMIT = 100
CONVERSATION_LIST_LIMIT = 20


class WebChannel:
    """Blocks on the orchestrator and lets its errors surface to the request."""

    def __init__(self, orchestrator: TurnOrchestrator, session_manager: SessionManager):
        self._orchestrator = orchestrator
        self._sessions = session_manager

    async def send(self, user_id: Optional[str], body: TurnBody) -> TurnResponse:
        user_id = _require_user(user_id)
        message = (body.message or "").strip()
        if not message:
            raise ValidationError("message is required")
        try:
            channel = Channel(body.channel or Channel.WEB)
        except ValueError as e:
            raise ValidationError(f"Unknown channel: {body.channel}") from e

        result = await self._orchestrator.run_turn(
            TurnRequest(
                user_id=user_id,
                message=message,
                channel=channel,
                conversation_id=body.conversation_id,
            )
        )
        return TurnResponse(
            response_text=result.text,
            conversation_id=result.conversation_id,
            model_tier=result.tier.value,
            tokens=TokenUsage(
                input=result.input_tokens,
                output=result.output_tokens,
                total=result.total_tokens,
            ),
            cost_cents=result.cost_cents,
            tool_rounds=result.tool_rounds,
            degraded=result.degraded,
        )

    async def history(
        self, user_id: Optional[str], conversation_id: Optional[str] = None
    ) -> MessageList | ConversationList:
        user_id = _require_user(user_id)
        if conversation_id:
            records = await self._sessions.history(conversation_id, user_id, HISTORY_MESSAGE_LIMIT)
            return MessageList(
                messages=[
                    HistoryMessage(
                        role=r.role,
                        content=r.content,
                        model=r.model,
                        tokens_used=r.tokens_used,
                        cost_cents=r.cost_cents,
                        created_at=r.created_at,
                    )
                    for r in records
                ]
            )

        conversations = await self._sessions.list_conversations(user_id, CONVERSATION_LIST_LIMIT)
        return ConversationList(
            conversations=[
                ConversationSummary(
                    id=c.id,
                    channel=c.channel,
                    started_at=c.started_at,
                    last_message_at=c.last_message_at,
                )
                for c in conversations
            ]
        )


def _require_user(user_id: Optional[str]) -> str:
    if not user_id:
        raise AuthError("Unauthorized")
    return user_id
