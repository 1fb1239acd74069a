"""Tool invocation gateway: uniform dispatch that never raises past its boundary."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

from starbase.ai.tools.registry import ToolRegistry
from starbase.errors import ToolError
from starbase.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class ToolResult:
    success: bool
    data: Any = None
    error: str | None = None

    def to_content(self) -> str:
        """Serialized payload for a ``tool_result`` block."""
        payload = self.data if self.success else {"error": self.error}
        return json.dumps(payload, default=str)


class ToolGateway:
    def __init__(self, registry: ToolRegistry):
        self._registry = registry

    async def invoke(self, tool_name: str, args: dict[str, Any], acting_user_id: str) -> ToolResult:
        tool = self._registry.get(tool_name)
        if tool is None:
            logger.warning("tool_unknown", tool=tool_name)
            return ToolResult(success=False, error=f"Unknown tool: {tool_name}")

        try:
            parsed = tool.parse_args(args if isinstance(args, dict) else {})
            data = await tool.execute(parsed, acting_user_id)
        except ToolError as e:
            logger.info("tool_rejected", tool=tool_name, error=str(e))
            return ToolResult(success=False, error=str(e))
        except Exception as e:
            logger.exception("tool_invocation_failed", tool=tool_name)
            return ToolResult(success=False, error=f"Tool execution failed: {type(e).__name__}: {e}")

        return ToolResult(success=True, data=data)
