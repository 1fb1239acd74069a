"""Discord interactions channel: deferred replies over the interaction webhook."""

from __future__ import annotations

import asyncio
import json
from typing import Any, Coroutine

import httpx

from starbase.ai.orchestrator import TurnOrchestrator, TurnRequest
from starbase.channels.signature import SignatureVerifier
from starbase.config import DiscordConfig
from starbase.core.types import Channel
from starbase.errors import AuthError, IdentityResolutionError, ValidationError
from starbase.log import get_logger
from starbase.storage.identity_repo import IdentityRepository

logger = get_logger(__name__)

PING = 1
APPLICATION_COMMAND = 2

PONG = {"type": 1}
DEFERRED_CHANNEL_MESSAGE = {"type": 5}

MAX_MESSAGE_LENGTH = 2000
NOT_LINKED_TEXT = (
    "I don't recognize your Discord account. "
    "Ask the household admin to link it in Starbase settings."
)
FAILURE_TEXT = "Something went wrong. Try again in a moment."


def parse_options(options: list[dict[str, Any]] | None) -> dict[str, Any]:
    """Flatten slash-command options into a name -> value mapping."""
    return {opt["name"]: opt.get("value") for opt in options or [] if "name" in opt}


def translate_command(name: str, options: dict[str, Any]) -> str:
    """Turn a slash command into one natural-language instruction."""
    match name:
        case "task":
            message = f'Create a task: "{options.get("title", "")}"'
            if options.get("due"):
                message += f" due {options['due']}"
            if options.get("priority"):
                message += f" priority {options['priority']}"
            return message
        case "habit":
            return f'Check in to my habit "{options.get("name", "")}"'
        case "budget":
            return f"Show me my spending summary for {options.get('period') or 'this month'}"
        case "ask":
            return str(options.get("message") or "")
        case "shop":
            return f"Add these to my shopping list: {options.get('items', '')}"
        case "dashboard":
            return "Give me my daily dashboard overview"
        case "usage":
            return "Show me my API usage and costs for this month"
        case _:
            values = " ".join(str(v) for v in options.values())
            return f"{name} {values}".strip()


class DiscordChannel:
    """Acknowledges interactions at once and runs the turn in the background.

    The reply is posted to the interaction's one-time webhook. Delivery is
    best effort: failures are logged and never retried.
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        identities: IdentityRepository,
        config: DiscordConfig,
        http_client: httpx.AsyncClient,
    ):
        self._orchestrator = orchestrator
        self._identities = identities
        self._config = config
        self._http = http_client
        self._verifier = SignatureVerifier(config.public_key)
        self._pending: set[asyncio.Task[None]] = set()

    async def handle(self, body: bytes, signature: str, timestamp: str) -> dict[str, Any]:
        """Verify and acknowledge an inbound interaction; never waits on the turn."""
        if not self._verifier.verify(body, signature, timestamp):
            logger.warning("discord_signature_invalid")
            raise AuthError("Invalid signature")

        try:
            interaction = json.loads(body)
        except json.JSONDecodeError as e:
            raise ValidationError("Invalid JSON body") from e

        kind = interaction.get("type")
        if kind == PING:
            return PONG
        if kind == APPLICATION_COMMAND:
            self._spawn(self._process(interaction))
            return DEFERRED_CHANNEL_MESSAGE
        return PONG

    async def drain(self) -> None:
        """Wait for in-flight interactions (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _process(self, interaction: dict[str, Any]) -> None:
        data = interaction.get("data") or {}
        command = data.get("name", "")
        options = parse_options(data.get("options"))
        discord_user = (interaction.get("member") or {}).get("user") or interaction.get("user") or {}
        discord_user_id = discord_user.get("id")
        webhook_url = self._webhook_url(interaction.get("token", ""))

        try:
            user_id = await self._identities.resolve(Channel.DISCORD, discord_user_id)
            if user_id is None:
                raise IdentityResolutionError(Channel.DISCORD, str(discord_user_id))

            result = await self._orchestrator.run_turn(
                TurnRequest(
                    user_id=user_id,
                    message=translate_command(command, options),
                    channel=Channel.DISCORD,
                    channel_ref=interaction.get("channel_id"),
                )
            )
        except IdentityResolutionError as e:
            logger.info("discord_identity_unresolved", external_id=e.external_id)
            await self._deliver(webhook_url, NOT_LINKED_TEXT)
            return
        except Exception:
            logger.exception("discord_command_failed", command=command)
            await self._deliver(webhook_url, FAILURE_TEXT)
            return

        if result.tool_calls:
            logger.info(
                "discord_turn_completed",
                command=command,
                tools=result.tool_names,
                cost_dollars=f"${result.cost_cents / 100:.4f}",
            )
        await self._deliver(webhook_url, result.text)

    def _webhook_url(self, token: str) -> str:
        return f"{self._config.api_base}/webhooks/{self._config.application_id}/{token}"

    async def _deliver(self, url: str, content: str) -> None:
        try:
            response = await self._http.post(
                url,
                json={"content": content[:MAX_MESSAGE_LENGTH]},
                timeout=self._config.callback_timeout,
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("discord_delivery_failed", error=str(e))
