"""Shared fixtures: temporary database, repositories, scripted model, fake tools."""

from __future__ import annotations

import copy
import itertools
from typing import Any, Optional, Sequence

import pytest
import pytest_asyncio
from pydantic import BaseModel

from starbase.ai.client import AIClient, ModelResponse
from starbase.ai.compressor import ContextCompressor
from starbase.ai.ledger import UsageLedger
from starbase.ai.orchestrator import TurnOrchestrator
from starbase.ai.tools.base import Tool
from starbase.ai.tools.gateway import ToolGateway
from starbase.ai.tools.registry import ToolRegistry
from starbase.config import AgentConfig, CompressionConfig
from starbase.core.session import SessionManager
from starbase.errors import ProviderError
from starbase.storage.conversation_repo import ConversationRepository
from starbase.storage.database import Database
from starbase.storage.identity_repo import IdentityRepository
from starbase.storage.memory_repo import ObservationRepository
from starbase.storage.models import MessageRecord

_ids = itertools.count(1)


# ── Scripted model ────────────────────────────────────────────────────────────


def text_response(text: str, input_tokens: int = 10, output_tokens: int = 5) -> ModelResponse:
    return ModelResponse(
        content=[{"type": "text", "text": text}] if text else [],
        stop_reason="end_turn",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


def tool_response(
    *calls: tuple[str, dict[str, Any]],
    text: str = "",
    input_tokens: int = 10,
    output_tokens: int = 5,
) -> ModelResponse:
    content: list[dict[str, Any]] = [{"type": "text", "text": text}] if text else []
    for name, args in calls:
        content.append({"type": "tool_use", "id": f"toolu_{next(_ids)}", "name": name, "input": args})
    return ModelResponse(
        content=content,
        stop_reason="tool_use",
        input_tokens=input_tokens,
        output_tokens=output_tokens,
    )


class FakeAIClient(AIClient):
    """Returns queued responses in order; repeats ``default`` once the queue is empty."""

    def __init__(self, responses: Sequence[ModelResponse | Exception] = (), default: Optional[ModelResponse] = None):
        self.responses = list(responses)
        self.default = default
        self.calls: list[dict[str, Any]] = []

    async def complete(self, model, system, messages, tools=None, max_tokens=2048, temperature=0.7):
        self.calls.append(
            {
                "model": model,
                "system": system,
                "messages": copy.deepcopy(messages),
                "tools": tools,
                "max_tokens": max_tokens,
            }
        )
        if self.responses:
            item = self.responses.pop(0)
        elif self.default is not None:
            item = self.default
        else:
            raise AssertionError("FakeAIClient ran out of scripted responses")
        if isinstance(item, Exception):
            raise item
        return item


class FakeSummarizer:
    def __init__(self, text: str = "summary", fail: bool = False):
        self.text = text
        self.fail = fail
        self.calls: list[tuple[Optional[str], list[MessageRecord]]] = []

    async def summarize(self, prior_summary, messages):
        self.calls.append((prior_summary, list(messages)))
        if self.fail:
            raise ProviderError("summarizer down")
        return self.text


# ── Fake tools ────────────────────────────────────────────────────────────────


class EchoArgs(BaseModel):
    value: str = "ping"


class EchoTool(Tool):
    args_model = EchoArgs

    def __init__(self, name: str = "echo"):
        self._name = name
        self.calls: list[tuple[str, str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def description(self) -> str:
        return "Echo the value back."

    async def execute(self, args: EchoArgs, user_id: str) -> dict[str, Any]:
        self.calls.append((args.value, user_id))
        return {"echo": args.value}


class ExplodingTool(Tool):
    @property
    def name(self) -> str:
        return "explode"

    @property
    def description(self) -> str:
        return "Always fails."

    async def execute(self, args: Any, user_id: str) -> Any:
        raise RuntimeError("database connection lost")


# ── Storage fixtures ──────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def db(tmp_path):
    database = Database(str(tmp_path / "test.db"))
    await database.initialize()
    yield database
    await database.close()


@pytest.fixture
def repo(db):
    return ConversationRepository(db)


@pytest.fixture
def observation_repo(db):
    return ObservationRepository(db)


@pytest.fixture
def identity_repo(db):
    return IdentityRepository(db)


@pytest.fixture
def session_manager(repo):
    return SessionManager(repo)


# ── Engine fixtures ───────────────────────────────────────────────────────────


@pytest.fixture
def agent_config():
    return AgentConfig()


@pytest.fixture
def ledger(agent_config):
    return UsageLedger(agent_config.tiers)


@pytest.fixture
def echo_tool():
    return EchoTool()


@pytest.fixture
def tool_registry(echo_tool):
    registry = ToolRegistry()
    registry.register(echo_tool)
    registry.register(EchoTool("lookup"))
    registry.register(ExplodingTool())
    return registry


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def compression_config():
    return CompressionConfig(threshold_messages=50, keep_recent=40)


@pytest.fixture
def compressor(summarizer, compression_config):
    return ContextCompressor(summarizer, compression_config)


@pytest.fixture
def make_orchestrator(session_manager, compressor, tool_registry, ledger, observation_repo, agent_config):
    def _make(ai_client: AIClient, config: Optional[AgentConfig] = None) -> TurnOrchestrator:
        return TurnOrchestrator(
            ai_client=ai_client,
            session_manager=session_manager,
            compressor=compressor,
            tool_registry=tool_registry,
            tool_gateway=ToolGateway(tool_registry),
            ledger=ledger,
            observation_repo=observation_repo,
            config=config or agent_config,
        )

    return _make
