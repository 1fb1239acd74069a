"""Context compression: fold older history into a summary, keep a recent window."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol, Sequence

from starbase.ai.client import AIClient
from starbase.config import CompressionConfig
from starbase.core.types import Role
from starbase.errors import ProviderError
from starbase.log import get_logger
from starbase.storage.models import MessageRecord

logger = get_logger(__name__)

SUMMARY_SYSTEM_PROMPT = (
    "You summarize conversations concisely. Capture: key topics discussed, decisions made, "
    "user preferences revealed, tasks created/completed, any commitments or follow-ups. "
    "Be factual and dense. Every sentence should contain useful information. "
    "Do not include greetings or pleasantries."
)


@dataclass(frozen=True)
class ConversationContext:
    """Bounded context for one model call.

    ``summary`` covers every message up to and including the id
    ``summarized_through``; ``window`` holds only messages after it.
    """

    summary: Optional[str]
    window: tuple[MessageRecord, ...]
    was_summarized: bool
    summarized_through: int


class Summarizer(Protocol):
    async def summarize(self, prior_summary: Optional[str], messages: Sequence[MessageRecord]) -> str:
        ...


class LLMSummarizer:
    """Summarizes with a single cheap model call."""

    def __init__(self, ai_client: AIClient, model: str, max_tokens: int = 500, assistant_name: str = "Starbase"):
        self._ai_client = ai_client
        self._model = model
        self._max_tokens = max_tokens
        self._assistant_name = assistant_name

    async def summarize(self, prior_summary: Optional[str], messages: Sequence[MessageRecord]) -> str:
        transcript = "\n".join(
            f"{'User' if m.role == Role.USER else self._assistant_name}: {m.content}" for m in messages
        )
        if prior_summary:
            prompt = (
                f"Here is a previous summary of the conversation:\n{prior_summary}\n\n"
                f"Here are additional messages since that summary:\n{transcript}\n\n"
                "Produce an updated, comprehensive summary."
            )
        else:
            prompt = (
                "Here is a conversation between a user and their AI household assistant "
                f"({self._assistant_name}):\n{transcript}"
            )
        prompt += "\n\nSummarize this conversation in 3-5 sentences. Focus on facts, decisions, and user preferences."

        response = await self._ai_client.complete(
            model=self._model,
            system=SUMMARY_SYSTEM_PROMPT,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=self._max_tokens,
            temperature=0.0,
        )
        logger.info(
            "summary_generated",
            input_tokens=response.input_tokens,
            output_tokens=response.output_tokens,
        )
        return response.text.strip()


class ContextCompressor:
    def __init__(self, summarizer: Summarizer, config: CompressionConfig):
        self._summarizer = summarizer
        self._threshold_messages = config.threshold_messages
        self._threshold_chars = config.threshold_chars
        self._keep_recent = config.keep_recent
        self._batch = config.summary_batch_messages

    def needs_compression(self, history: Sequence[MessageRecord]) -> bool:
        if len(history) > self._threshold_messages:
            return True
        return sum(len(m.content) for m in history) > self._threshold_chars

    async def prepare(
        self,
        history: Sequence[MessageRecord],
        prior_summary: Optional[str],
        summarized_through: int = 0,
    ) -> ConversationContext:
        """Return the context to send, compressing when over threshold.

        A new summary replaces ``prior_summary``; it is never appended to it.
        """
        unchanged = ConversationContext(
            summary=prior_summary,
            window=tuple(history),
            was_summarized=False,
            summarized_through=summarized_through,
        )
        if not self.needs_compression(history):
            return unchanged

        cut = self._split_point(history)
        if cut is None:
            return unchanged

        older, recent = history[:cut], tuple(history[cut:])
        try:
            summary = await self._summarize(prior_summary, older)
        except ProviderError as e:
            logger.warning("summarization_failed", error=str(e), dropped=len(older))
            summary = ""

        if not summary:
            # Truncate for this call only; the watermark stays so nothing is lost.
            return ConversationContext(
                summary=prior_summary,
                window=recent,
                was_summarized=False,
                summarized_through=summarized_through,
            )

        through = older[-1].id or summarized_through
        logger.info("context_compressed", summarized=len(older), kept=len(recent), through=through)
        return ConversationContext(
            summary=summary,
            window=recent,
            was_summarized=True,
            summarized_through=through,
        )

    async def _summarize(self, prior_summary: Optional[str], older: Sequence[MessageRecord]) -> str:
        """Fold ``older`` into the summary in bounded batches, oldest first."""
        summary = prior_summary
        for start in range(0, len(older), self._batch):
            summary = await self._summarizer.summarize(summary, older[start : start + self._batch])
            if not summary:
                return ""
        return summary or ""

    def _split_point(self, history: Sequence[MessageRecord]) -> int | None:
        """Index of the first kept message.

        The window keeps at most ``keep_recent`` messages and, where possible,
        no more than ``threshold_chars`` characters. It always opens on a user
        turn.
        """
        cut = _next_user_turn(history, max(len(history) - self._keep_recent, 1))
        if cut is None:
            return None

        kept_chars = sum(len(m.content) for m in history[cut:])
        while kept_chars > self._threshold_chars:
            nxt = _next_user_turn(history, cut + 1)
            if nxt is None:
                break
            kept_chars -= sum(len(m.content) for m in history[cut:nxt])
            cut = nxt
        return cut


def _next_user_turn(history: Sequence[MessageRecord], start: int) -> int | None:
    for i in range(start, len(history)):
        if history[i].role == Role.USER:
            return i
    return None
