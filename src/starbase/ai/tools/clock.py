"""Current date/time tool so the model can resolve 'today', 'this week', etc."""

from __future__ import annotations

from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field

from starbase.ai.tools.base import Tool
from starbase.errors import ToolError


class ClockArgs(BaseModel):
    timezone: str = Field(default="UTC", description="IANA timezone name, e.g. 'America/Chicago'")


class ClockTool(Tool):
    args_model = ClockArgs

    @property
    def name(self) -> str:
        return "get_current_datetime"

    @property
    def description(self) -> str:
        return "Get the current date, time, and weekday in a timezone."

    async def execute(self, args: ClockArgs, user_id: str) -> dict[str, Any]:
        try:
            tz = ZoneInfo(args.timezone)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ToolError(f"Unknown timezone: {args.timezone}") from e
        now = datetime.now(tz)
        return {
            "iso": now.isoformat(timespec="seconds"),
            "date": now.date().isoformat(),
            "weekday": now.strftime("%A"),
            "timezone": args.timezone,
        }
