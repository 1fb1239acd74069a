"""Turn orchestrator: the bounded model/tool loop behind every channel."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog

from starbase.ai.client import AIClient, ModelResponse
from starbase.ai.compressor import ContextCompressor
from starbase.ai.conversation import build_messages
from starbase.ai.ledger import UsageLedger
from starbase.ai.prompts import base_prompt, build_system_prompt
from starbase.ai.router import classify
from starbase.ai.tools.gateway import ToolGateway
from starbase.ai.tools.registry import ToolRegistry
from starbase.config import AgentConfig
from starbase.core.session import SessionManager
from starbase.core.types import Channel, ModelTier, Role
from starbase.errors import ProviderError, ValidationError
from starbase.log import get_logger
from starbase.storage.memory_repo import ObservationRepository
from starbase.storage.models import ActionRecord, MessageMetrics

logger = get_logger(__name__)

ACTION_SUMMARY_INPUT_CHARS = 200


@dataclass(frozen=True)
class TurnRequest:
    user_id: str
    message: str
    channel: str = Channel.WEB
    conversation_id: Optional[str] = None
    channel_ref: Optional[str] = None


@dataclass
class TurnResult:
    text: str
    conversation_id: str
    tier: ModelTier
    input_tokens: int
    output_tokens: int
    cost_cents: float
    tool_rounds: int
    degraded: bool = False  # round bound hit while the model still wanted tools
    tool_calls: list[dict[str, Any]] = field(default_factory=list)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    @property
    def tool_names(self) -> list[str]:
        return [c["name"] for c in self.tool_calls]


class TurnOrchestrator:
    """Runs one user turn: AwaitingModel -> (ToolUse -> AwaitingModel)* -> Final.

    Shared by every channel adapter. Model failures raise ProviderError and
    leave no assistant message behind; tool failures are handed back to the
    model as tool results and never end the turn.
    """

    def __init__(
        self,
        ai_client: AIClient,
        session_manager: SessionManager,
        compressor: ContextCompressor,
        tool_registry: ToolRegistry,
        tool_gateway: ToolGateway,
        ledger: UsageLedger,
        observation_repo: ObservationRepository,
        config: AgentConfig,
    ):
        self._ai_client = ai_client
        self._sessions = session_manager
        self._compressor = compressor
        self._tool_registry = tool_registry
        self._tool_gateway = tool_gateway
        self._ledger = ledger
        self._observations = observation_repo
        self._config = config

    async def run_turn(self, request: TurnRequest) -> TurnResult:
        text = (request.message or "").strip()
        if not text:
            raise ValidationError("message is required")

        conversation_id = await self._sessions.resolve_or_create(
            request.conversation_id, request.user_id, request.channel, request.channel_ref
        )
        with structlog.contextvars.bound_contextvars(
            conversation_id=conversation_id,
            user_id=request.user_id,
            channel=str(request.channel),
        ):
            async with self._sessions.locked(conversation_id):
                return await self._run_locked(conversation_id, request, text)

    async def _run_locked(self, conversation_id: str, request: TurnRequest, text: str) -> TurnResult:
        await self._sessions.append_message(conversation_id, Role.USER, text)

        system, messages = await self._build_context(conversation_id, request)
        tier = classify(text)
        model = self._ledger.model_for(tier)
        tools = self._tool_registry.manifest()
        logger.info("turn_started", tier=str(tier), model=model, window=len(messages))

        response = await self._call_model(model, system, messages, tools)
        input_tokens = response.input_tokens
        output_tokens = response.output_tokens
        tool_calls: list[dict[str, Any]] = []
        rounds = 0

        while response.wants_tools and rounds < self._config.max_tool_rounds:
            rounds += 1
            results = await self._run_tool_round(
                response.tool_uses, conversation_id, request, tool_calls
            )
            messages = [
                *messages,
                {"role": Role.ASSISTANT.value, "content": response.content},
                {"role": Role.USER.value, "content": results},
            ]
            logger.info("tool_round", round=rounds, tool_count=len(results))

            response = await self._call_model(model, system, messages, tools)
            input_tokens += response.input_tokens
            output_tokens += response.output_tokens

        degraded = response.wants_tools
        if degraded:
            logger.warning("tool_round_limit_reached", rounds=rounds)
        final_text = response.text or self._config.fallback_text

        cost_cents = self._ledger.record(tier, model, input_tokens, output_tokens)
        await self._sessions.append_message(
            conversation_id,
            Role.ASSISTANT,
            final_text,
            MessageMetrics(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                model=tier.value,
                cost_cents=cost_cents,
                tool_calls=tool_calls or None,
            ),
        )
        logger.info(
            "turn_completed",
            tool_rounds=rounds,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=cost_cents,
            degraded=degraded,
        )
        return TurnResult(
            text=final_text,
            conversation_id=conversation_id,
            tier=tier,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            cost_cents=cost_cents,
            tool_rounds=rounds,
            degraded=degraded,
            tool_calls=tool_calls,
        )

    async def _build_context(
        self, conversation_id: str, request: TurnRequest
    ) -> tuple[str, list[dict[str, Any]]]:
        """System prompt plus the compressed, alternation-correct window."""
        conversation = await self._sessions.get_owned(conversation_id, request.user_id)
        backlog = await self._sessions.load_unsummarized(
            conversation_id, after_id=conversation.summarized_through
        )
        context = await self._compressor.prepare(
            backlog, conversation.summary, conversation.summarized_through
        )
        if context.was_summarized and context.summary:
            await self._sessions.save_summary(
                conversation_id, context.summary, context.summarized_through
            )

        # Hard cap on top of compression; keep the shorter of the two suffixes.
        window = await self._sessions.load_window(
            conversation_id,
            self._config.max_history_messages,
            after_id=context.summarized_through,
        )
        if len(context.window) < len(window):
            window = list(context.window)

        facts: list[str] = []
        if self._config.memory_facts:
            observations = await self._observations.recent(
                request.user_id, limit=self._config.memory_facts
            )
            facts = [o.content for o in observations]

        system = build_system_prompt(base_prompt(request.channel), context.summary, facts)
        return system, build_messages(window)

    async def _call_model(
        self,
        model: str,
        system: str,
        messages: list[dict[str, Any]],
        tools: list[dict[str, Any]],
    ) -> ModelResponse:
        try:
            return await self._ai_client.complete(
                model=model,
                system=system,
                messages=messages,
                tools=tools or None,
                max_tokens=self._config.max_response_tokens,
                temperature=self._config.temperature,
            )
        except ProviderError:
            raise
        except Exception as e:
            logger.error("provider_error", model=model, error=str(e))
            raise ProviderError(f"Model call failed: {e}") from e

    async def _run_tool_round(
        self,
        tool_uses: list[dict[str, Any]],
        conversation_id: str,
        request: TurnRequest,
        tool_calls: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """Execute one round's tool calls concurrently; one Action and one result per call."""
        results = await asyncio.gather(
            *(
                self._tool_gateway.invoke(block["name"], block.get("input") or {}, request.user_id)
                for block in tool_uses
            )
        )

        result_blocks: list[dict[str, Any]] = []
        for block, result in zip(tool_uses, results):
            tool_input = block.get("input") or {}
            await self._sessions.record_action(
                ActionRecord(
                    conversation_id=conversation_id,
                    user_id=request.user_id,
                    action_type=block["name"],
                    summary=f"{block['name']}({json.dumps(tool_input, default=str)[:ACTION_SUMMARY_INPUT_CHARS]})",
                    channel=str(request.channel),
                )
            )
            tool_calls.append({"name": block["name"], "input": tool_input, "success": result.success})

            result_block: dict[str, Any] = {
                "type": "tool_result",
                "tool_use_id": block["id"],
                "content": result.to_content(),
            }
            if not result.success:
                result_block["is_error"] = True
                logger.info("tool_result_error", tool=block["name"], error=result.error)
            result_blocks.append(result_block)
        return result_blocks
