"""Long-term memory: observations the assistant keeps about a user."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from starbase.storage.database import Database
from starbase.storage.models import Observation


class ObservationRepository:
    def __init__(self, db: Database):
        self._db = db

    async def add(self, observation: Observation) -> int:
        cursor = await self._db.conn.execute(
            "INSERT INTO user_observations (user_id, category, content) VALUES (?, ?, ?)",
            (observation.user_id, observation.category, observation.content),
        )
        await self._db.conn.commit()
        return cursor.lastrowid  # type: ignore[return-value]

    async def recent(
        self, user_id: str, limit: int = 10, category: Optional[str] = None
    ) -> list[Observation]:
        """Newest observations first, optionally filtered by category."""
        if category:
            cursor = await self._db.conn.execute(
                """SELECT * FROM user_observations
                   WHERE user_id = ? AND category = ?
                   ORDER BY created_at DESC, id DESC LIMIT ?""",
                (user_id, category, limit),
            )
        else:
            cursor = await self._db.conn.execute(
                """SELECT * FROM user_observations
                   WHERE user_id = ?
                   ORDER BY created_at DESC, id DESC LIMIT ?""",
                (user_id, limit),
            )
        rows = await cursor.fetchall()
        return [
            Observation(
                id=row["id"],
                user_id=row["user_id"],
                category=row["category"],
                content=row["content"],
                created_at=datetime.fromisoformat(row["created_at"]),
            )
            for row in rows
        ]
