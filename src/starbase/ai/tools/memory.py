"""Tools giving the model read/write access to long-term user observations."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from starbase.ai.tools.base import Tool
from starbase.storage.memory_repo import ObservationRepository
from starbase.storage.models import Observation


class StoreObservationArgs(BaseModel):
    content: str = Field(min_length=1, description="The fact or preference to remember")
    category: str = Field(default="general", description="Grouping such as 'preference', 'schedule', 'finance'")


class RecallObservationsArgs(BaseModel):
    category: Optional[str] = Field(default=None, description="Only return observations in this category")
    limit: int = Field(default=10, ge=1, le=50, description="Max results (default 10)")


class StoreObservationTool(Tool):
    args_model = StoreObservationArgs

    def __init__(self, repo: ObservationRepository):
        self._repo = repo

    @property
    def name(self) -> str:
        return "store_observation"

    @property
    def description(self) -> str:
        return (
            "Remember a durable fact about the user (a preference, routine, or commitment) "
            "so it is available in future conversations."
        )

    async def execute(self, args: StoreObservationArgs, user_id: str) -> dict[str, Any]:
        observation_id = await self._repo.add(
            Observation(user_id=user_id, content=args.content.strip(), category=args.category)
        )
        return {"id": observation_id, "stored": True}


class RecallObservationsTool(Tool):
    args_model = RecallObservationsArgs

    def __init__(self, repo: ObservationRepository):
        self._repo = repo

    @property
    def name(self) -> str:
        return "recall_observations"

    @property
    def description(self) -> str:
        return "Recall facts previously remembered about the user, newest first."

    async def execute(self, args: RecallObservationsArgs, user_id: str) -> list[dict[str, Any]]:
        observations = await self._repo.recent(user_id, limit=args.limit, category=args.category)
        return [
            {"category": o.category, "content": o.content, "created_at": o.created_at.isoformat()}
            for o in observations
        ]
