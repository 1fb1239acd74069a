"""Mapping of external platform identities to internal user ids."""

from __future__ import annotations

from starbase.log import get_logger
from starbase.storage.database import Database

logger = get_logger(__name__)


class IdentityRepository:
    def __init__(self, db: Database, default_user_id: str | None = None):
        self._db = db
        self._default_user_id = default_user_id

    async def link(self, platform: str, external_id: str, user_id: str) -> None:
        await self._db.conn.execute(
            """INSERT INTO identity_links (platform, external_id, user_id)
               VALUES (?, ?, ?)
               ON CONFLICT(platform, external_id) DO UPDATE SET user_id = excluded.user_id""",
            (str(platform), external_id, user_id),
        )
        await self._db.conn.commit()
        logger.info("identity_linked", platform=platform, external_id=external_id, user_id=user_id)

    async def resolve(self, platform: str, external_id: str | None) -> str | None:
        """Return the linked user id, the household default, or None."""
        if external_id:
            cursor = await self._db.conn.execute(
                "SELECT user_id FROM identity_links WHERE platform = ? AND external_id = ?",
                (str(platform), external_id),
            )
            row = await cursor.fetchone()
            if row:
                return row["user_id"]
        return self._default_user_id
