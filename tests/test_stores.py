"""
Tests for the credential store and the refresh session store.

Covers email normalization and uniqueness, identity updates and deletion, and the refresh session
lifecycle: creation, single-use rotation, idempotent deletion and purging.
"""

import asyncio
from datetime import timedelta

import pytest

from prepdeck.auth.store.identities import IdentityExists, normalize_email
from tests.test_helpers import (
    create_identity,
    generate_test_datetime,
    generate_ulid_string,
)


class TestCredentialStore:
    """Test identity persistence."""

    def test_normalize_email(self):
        assert normalize_email("  Jane@Example.COM ") == "jane@example.com"

    @pytest.mark.asyncio
    async def test_create_and_find(self, credential_store):
        identity = await create_identity(
            credential_store, email="Jane@Example.com", password_hash="$2b$04$digest"
        )

        assert identity.email == "jane@example.com"
        assert len(identity.guid) == 26
        assert identity.is_verified is False

        by_email = await credential_store.find_by_email("JANE@example.com")
        assert by_email is not None
        assert by_email.guid == identity.guid
        assert by_email.password_hash == "$2b$04$digest"
        assert by_email.created_at.tzinfo is not None

        by_id = await credential_store.find_by_id(identity.guid)
        assert by_id is not None
        assert by_id.email == "jane@example.com"

    @pytest.mark.asyncio
    async def test_find_missing(self, credential_store):
        assert await credential_store.find_by_email("nobody@example.com") is None
        assert await credential_store.find_by_id(generate_ulid_string()) is None

    @pytest.mark.asyncio
    async def test_email_is_unique_case_insensitively(self, credential_store):
        await create_identity(credential_store, email="jane@example.com")

        with pytest.raises(IdentityExists):
            await create_identity(credential_store, email="JANE@example.com")

    @pytest.mark.asyncio
    async def test_federated_subject_is_unique(self, credential_store):
        await create_identity(
            credential_store, email="jane@example.com", federated_subject="google-1"
        )

        with pytest.raises(IdentityExists):
            await create_identity(
                credential_store, email="john@example.com", federated_subject="google-1"
            )

    @pytest.mark.asyncio
    async def test_find_by_federated_subject(self, credential_store):
        identity = await create_identity(credential_store, federated_subject="google-1")

        found = await credential_store.find_by_federated_subject("google-1")
        assert found is not None
        assert found.guid == identity.guid
        assert found.created_at.tzinfo is not None
        assert await credential_store.find_by_federated_subject("google-2") is None

    @pytest.mark.asyncio
    async def test_update(self, credential_store):
        identity = await create_identity(credential_store)

        updated = await credential_store.update(
            identity.guid, name="Janet Doe", federated_subject="google-1"
        )

        assert updated is not None
        assert updated.name == "Janet Doe"
        assert updated.federated_subject == "google-1"
        assert updated.email == identity.email

    @pytest.mark.asyncio
    async def test_update_missing(self, credential_store):
        assert await credential_store.update(generate_ulid_string(), name="Nobody") is None

    @pytest.mark.asyncio
    async def test_delete_removes_sessions(
        self, credential_store, session_store, token_issuer
    ):
        identity = await create_identity(credential_store)
        pair = await token_issuer.issue(identity)

        assert await credential_store.delete(identity.guid) is True

        assert await credential_store.find_by_id(identity.guid) is None
        assert await session_store.find_by_token(pair.refresh_token) is None
        assert await credential_store.delete(identity.guid) is False


class TestRefreshSessionStore:
    """Test the refresh session lifecycle."""

    @pytest.fixture
    async def identity(self, credential_store):
        return await create_identity(credential_store)

    @pytest.mark.asyncio
    async def test_create_and_find(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create("token-1", identity.guid, now, now + timedelta(days=7))

        refresh_session = await session_store.find_by_token("token-1")

        assert refresh_session is not None
        assert refresh_session.guid == identity.guid
        assert refresh_session.created_at == now
        assert refresh_session.expires_at == now + timedelta(days=7)

    @pytest.mark.asyncio
    async def test_find_unknown(self, session_store):
        assert await session_store.find_by_token("no-such-token") is None

    @pytest.mark.asyncio
    async def test_rotate_is_single_use(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create("token-1", identity.guid, now, now + timedelta(days=7))

        new_expiry = now + timedelta(days=8)
        assert await session_store.rotate("token-1", "token-2", new_expiry, now) is True
        assert await session_store.rotate("token-1", "token-3", new_expiry, now) is False

        assert await session_store.find_by_token("token-1") is None
        assert await session_store.find_by_token("token-3") is None
        rotated = await session_store.find_by_token("token-2")
        assert rotated is not None
        assert rotated.expires_at == new_expiry
        assert rotated.created_at == now

    @pytest.mark.asyncio
    async def test_concurrent_rotations_have_one_winner(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create("token-1", identity.guid, now, now + timedelta(days=7))

        new_expiry = now + timedelta(days=7)
        results = await asyncio.gather(
            *[
                session_store.rotate("token-1", f"token-new-{i}", new_expiry, now)
                for i in range(5)
            ]
        )

        assert sorted(results) == [False, False, False, False, True]

    @pytest.mark.asyncio
    async def test_rotate_refuses_expired(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create(
            "token-1", identity.guid, now - timedelta(days=8), now - timedelta(days=1)
        )

        assert (
            await session_store.rotate("token-1", "token-2", now + timedelta(days=7), now)
            is False
        )
        assert await session_store.find_by_token("token-1") is not None

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create("token-1", identity.guid, now, now + timedelta(days=7))

        assert await session_store.delete("token-1") is True
        assert await session_store.delete("token-1") is False
        assert await session_store.delete("never-existed") is False
        assert await session_store.find_by_token("token-1") is None

    @pytest.mark.asyncio
    async def test_purge_expired(self, session_store, identity):
        now = generate_test_datetime()
        await session_store.create(
            "expired-1", identity.guid, now - timedelta(days=8), now - timedelta(days=1)
        )
        await session_store.create(
            "expired-2", identity.guid, now - timedelta(days=8), now - timedelta(seconds=1)
        )
        await session_store.create("live", identity.guid, now, now + timedelta(days=7))

        assert await session_store.purge_expired(now) == 2

        assert await session_store.find_by_token("expired-1") is None
        assert await session_store.find_by_token("expired-2") is None
        assert await session_store.find_by_token("live") is not None
        assert await session_store.purge_expired(now) == 0
