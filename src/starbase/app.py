"""Application wiring - builds all components and manages their lifecycle."""

from __future__ import annotations

from typing import Optional

import httpx

from starbase.ai.client import AIClient, AnthropicClient
from starbase.ai.compressor import ContextCompressor, LLMSummarizer
from starbase.ai.ledger import UsageLedger
from starbase.ai.orchestrator import TurnOrchestrator
from starbase.ai.tools.gateway import ToolGateway
from starbase.ai.tools.registry import ToolRegistry
from starbase.channels.discord import DiscordChannel
from starbase.channels.web import WebChannel
from starbase.config import AppConfig
from starbase.core.session import SessionManager
from starbase.core.types import ModelTier
from starbase.log import get_logger
from starbase.storage.conversation_repo import ConversationRepository
from starbase.storage.database import Database
from starbase.storage.identity_repo import IdentityRepository
from starbase.storage.memory_repo import ObservationRepository

logger = get_logger(__name__)


class StarbaseApp:
    """Top-level component container.

    ``ai_client`` and ``http_client`` may be injected (tests, embedding);
    otherwise they are built from the configuration.
    """

    def __init__(
        self,
        config: AppConfig,
        ai_client: Optional[AIClient] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.conversation_repo = ConversationRepository(self.db)
        self.observation_repo = ObservationRepository(self.db)
        self.identity_repo = IdentityRepository(self.db, config.discord.default_user_id)
        self.session_manager = SessionManager(
            self.conversation_repo, history_cap=config.agent.max_history_messages
        )
        self.tool_registry = ToolRegistry()
        self.tool_gateway = ToolGateway(self.tool_registry)
        self.ledger = UsageLedger(config.agent.tiers)

        self._owns_ai_client = ai_client is None
        self.ai_client = ai_client or self._create_ai_client()
        self._owns_http_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient()

        self.compressor = ContextCompressor(
            LLMSummarizer(
                self.ai_client,
                model=self.ledger.model_for(ModelTier.FAST),
                max_tokens=config.compression.max_summary_tokens,
            ),
            config.compression,
        )
        self.orchestrator = TurnOrchestrator(
            ai_client=self.ai_client,
            session_manager=self.session_manager,
            compressor=self.compressor,
            tool_registry=self.tool_registry,
            tool_gateway=self.tool_gateway,
            ledger=self.ledger,
            observation_repo=self.observation_repo,
            config=config.agent,
        )
        self.web = WebChannel(self.orchestrator, self.session_manager)
        self.discord = DiscordChannel(
            self.orchestrator, self.identity_repo, config.discord, self.http_client
        )

    async def start(self) -> None:
        """Open storage and register built-in tools."""
        await self.db.initialize()
        self.tool_registry.register_builtins(self.observation_repo)
        logger.info(
            "starbase_started",
            tools=len(self.tool_registry.names()),
            discord=self.config.discord.enabled,
        )

    async def stop(self) -> None:
        """Let deferred replies finish, then release resources."""
        await self.discord.drain()
        if self._owns_http_client:
            await self.http_client.aclose()
        if self._owns_ai_client and isinstance(self.ai_client, AnthropicClient):
            await self.ai_client.close()
        await self.db.close()
        logger.info("starbase_stopped")

    def _create_ai_client(self) -> AIClient:
        if not self.config.anthropic:
            raise ValueError("No 'anthropic' section in config")
        return AnthropicClient(self.config.anthropic)
