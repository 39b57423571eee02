"""
Credential store.

Owns the `identities` table. Emails are lower-cased on the way in and on lookup; the unique index
on `email` is what keeps two identities from sharing an address, including under concurrent
sign-ups.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from ulid import ULID

from prepdeck.auth.model.base import as_utc
from prepdeck.auth.model.identity import Identity
from prepdeck.auth.model.session import RefreshSession

logger = logging.getLogger(__name__)


class IdentityExists(Exception):
    """Raised by `CredentialStore.create` when the email (or Google subject) is already taken."""


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _normalized(identity: Optional[Identity]) -> Optional[Identity]:
    if identity is not None:
        identity.created_at = as_utc(identity.created_at)
    return identity


class CredentialStore:
    def __init__(self, database_session_maker: async_sessionmaker[AsyncSession]) -> None:
        self.database_session_maker = database_session_maker

    async def find_by_email(self, email: str) -> Optional[Identity]:
        stmt = select(Identity).where(Identity.email == normalize_email(email))
        async with self.database_session_maker() as database_session:
            identity: Optional[Identity] = (await database_session.scalars(stmt)).first()
        return _normalized(identity)

    async def find_by_id(self, guid: str) -> Optional[Identity]:
        stmt = select(Identity).where(Identity.guid == guid)
        async with self.database_session_maker() as database_session:
            identity: Optional[Identity] = (await database_session.scalars(stmt)).first()
        return _normalized(identity)

    async def find_by_federated_subject(self, subject: str) -> Optional[Identity]:
        stmt = select(Identity).where(Identity.federated_subject == subject)
        async with self.database_session_maker() as database_session:
            identity: Optional[Identity] = (await database_session.scalars(stmt)).first()
        return _normalized(identity)

    async def create(
        self,
        email: str,
        name: str,
        password_hash: Optional[str] = None,
        federated_subject: Optional[str] = None,
        is_verified: bool = False,
        now: Optional[datetime] = None,
    ) -> Identity:
        if now is None:
            now = datetime.now(timezone.utc)

        identity = Identity(
            guid=str(ULID()),
            email=normalize_email(email),
            name=name,
            password_hash=password_hash,
            federated_subject=federated_subject,
            is_verified=is_verified,
            created_at=now,
        )
        try:
            async with self.database_session_maker() as database_session:
                async with database_session.begin():
                    database_session.add(identity)
        except IntegrityError as e:
            raise IdentityExists(identity.email) from e

        logger.info("created identity %s", identity.guid)
        return identity

    async def update(self, guid: str, **values: Any) -> Optional[Identity]:
        """Update columns of an identity and return the fresh row, or None if it is gone."""
        stmt = (
            update(Identity)
            .where(Identity.guid == guid)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.database_session_maker() as database_session:
                async with database_session.begin():
                    result = await database_session.execute(stmt)
        except IntegrityError as e:
            raise IdentityExists(guid) from e

        if result.rowcount == 0:
            return None
        return await self.find_by_id(guid)

    async def delete(self, guid: str) -> bool:
        """Delete an identity together with every refresh session it owns."""
        async with self.database_session_maker() as database_session:
            async with database_session.begin():
                await database_session.execute(
                    delete(RefreshSession).where(RefreshSession.guid == guid)
                )
                result = await database_session.execute(
                    delete(Identity).where(Identity.guid == guid)
                )
        deleted = result.rowcount > 0
        if deleted:
            logger.info("deleted identity %s", guid)
        return deleted
