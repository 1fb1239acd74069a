"""Name-keyed registry of the tools advertised to the model."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from starbase.ai.tools.base import Tool
from starbase.log import get_logger

if TYPE_CHECKING:
    from starbase.storage.memory_repo import ObservationRepository

logger = get_logger(__name__)


class ToolRegistry:
    """Registry of all available tools."""

    def __init__(self) -> None:
        self._tools: dict[str, Tool] = {}

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            logger.warning("tool_replaced", tool_name=tool.name)
        self._tools[tool.name] = tool
        logger.info("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> Tool | None:
        return self._tools.get(name)

    def names(self) -> list[str]:
        return list(self._tools.keys())

    def manifest(self) -> list[dict[str, Any]]:
        """Tool definitions in the Anthropic API format, in registration order."""
        return [t.to_api_dict() for t in self._tools.values()]

    def register_builtins(self, observation_repo: ObservationRepository) -> None:
        """Register the tools that ship with the engine itself."""
        from starbase.ai.tools.clock import ClockTool
        from starbase.ai.tools.memory import RecallObservationsTool, StoreObservationTool

        self.register(ClockTool())
        self.register(StoreObservationTool(observation_repo))
        self.register(RecallObservationsTool(observation_repo))
