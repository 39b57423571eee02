"""
Refresh session store.

Owns the `refresh_sessions` table. Every mutation is a single statement in its own transaction so
that the database row is the only serialization point between concurrent requests.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from prepdeck.auth.model.base import as_utc
from prepdeck.auth.model.session import RefreshSession

logger = logging.getLogger(__name__)


class RefreshSessionStore:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.database_session_maker = database_session_maker

    async def find_by_token(self, token: str) -> Optional[RefreshSession]:
        async with self.database_session_maker() as database_session:
            stmt = select(RefreshSession).where(RefreshSession.token == token)
            refresh_session: Optional[RefreshSession] = (
                await database_session.scalars(stmt)
            ).first()

        if refresh_session is not None:
            refresh_session.created_at = as_utc(refresh_session.created_at)
            refresh_session.expires_at = as_utc(refresh_session.expires_at)
        return refresh_session

    async def create(
        self, token: str, guid: str, created_at: datetime, expires_at: datetime
    ) -> RefreshSession:
        refresh_session = RefreshSession(
            token=token, guid=guid, created_at=created_at, expires_at=expires_at
        )
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                database_session.add(refresh_session)
        return refresh_session

    async def rotate(
        self,
        old_token: str,
        new_token: str,
        expires_at: datetime,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Atomically replace the token value and expiry of a live session.

        The row keeps its identity and creation time. Returns False when no row matched: the old
        token was already rotated, revoked or (when `now` is given) has expired in the meantime.
        When two rotations race on the same row, the database lets exactly one of them match.
        """
        conditions = [RefreshSession.token == old_token]
        if now is not None:
            conditions.append(RefreshSession.expires_at >= now)

        stmt = (
            update(RefreshSession)
            .where(*conditions)
            .values(token=new_token, expires_at=expires_at)
            .execution_options(synchronize_session=False)
        )
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(stmt)
        return result.rowcount == 1

    async def delete(self, token: str) -> bool:
        """Delete a session by token. Deleting a token that does not exist is not an error."""
        stmt = delete(RefreshSession).where(RefreshSession.token == token)
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(stmt)
        return result.rowcount > 0

    async def purge_expired(self, now: datetime) -> int:
        stmt = delete(RefreshSession).where(RefreshSession.expires_at < now)
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                result = await database_session.execute(stmt)
        purged = result.rowcount
        if purged > 0:
            logger.info("purged %d expired refresh sessions", purged)
        return purged
